"""
Rewards service: verifies AdMob server-side verification callbacks.
"""

from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import Request, Response
from fastapi.responses import PlainTextResponse, RedirectResponse

from shared.base_service import BaseService

from .keys.store import KeyStore
from .verification.handler import CallbackHandler
from .verification.models import CallbackRequest, VerificationOutcome

VERIFY_PATH = "/verify-reward"


class RewardsService(BaseService):
    """Rewards service implementation."""

    def __init__(self, *, http_client: Optional[httpx.AsyncClient] = None, **config_overrides):
        super().__init__("rewards", **config_overrides)
        self.key_store = KeyStore(
            self.config.key_urls,
            cache_ttl=self.config.key_cache_ttl_seconds,
            http_timeout=self.config.key_fetch_timeout_seconds,
            http_client=http_client,
            metrics=self.metrics,
            failure_threshold=self.config.key_source_failure_threshold,
            recovery_timeout=self.config.key_source_recovery_timeout,
        )
        self.callback_handler = CallbackHandler(self.key_store, metrics=self.metrics)
        self._setup_rewards_routes()

    def _setup_rewards_routes(self):
        """Set up reward verification routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "status": "OK",
                "service": "rewards",
                "message": "AdMob SSV verification service is running",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        @self.app.get("/healthz", response_class=PlainTextResponse)
        async def healthz():
            """Liveness probe."""
            return "ok"

        @self.app.head(VERIFY_PATH)
        async def verify_reward_head():
            """Reachability check."""
            return Response(status_code=200)

        @self.app.get(VERIFY_PATH)
        async def verify_reward(request: Request):
            """SSV callback endpoint."""
            if not self._is_secure(request):
                self.logger.warning("Callback received over plain HTTP", client=request.client.host if request.client else None)

            callback = CallbackRequest.from_query_string(request.scope.get("query_string", b""))
            result = await self.callback_handler.handle(callback)

            if result.outcome is VerificationOutcome.REJECTED:
                return PlainTextResponse("Unauthorized", status_code=401)
            # ACCEPTED, or INDETERMINATE for the console's unsigned "verify URL" probe.
            return PlainTextResponse("OK", status_code=200)

        @self.app.post(VERIFY_PATH)
        async def verify_reward_post(request: Request):
            """Compatibility shim for networks configured with POST."""
            query = request.url.query
            return RedirectResponse(f"{VERIFY_PATH}?{query}" if query else VERIFY_PATH, status_code=307)

    @staticmethod
    def _is_secure(request: Request) -> bool:
        forwarded_proto = request.headers.get("X-Forwarded-Proto", "")
        return request.url.scheme == "https" or forwarded_proto.split(",")[0].strip().lower() == "https"

    async def _on_startup(self) -> None:
        if self.config.key_warmup_on_startup:
            await self.key_store.warmup()

    async def _on_shutdown(self) -> None:
        await self.key_store.close()

    async def _check_dependencies(self):
        """Check rewards dependencies."""
        status = await self.key_store.check_health()
        cache = self.key_store.cache
        return {
            "verifier_keys": status,
            "verifier_keys_count": len(cache.key_set) if cache else 0,
            "key_sources": {
                url: state["state"] for url, state in self.key_store.source_states().items()
            },
        }


def create_app(**overrides):
    """Create FastAPI application."""
    service = RewardsService(**overrides)
    return service.app


if __name__ == "__main__":
    service = RewardsService()
    service.run()
