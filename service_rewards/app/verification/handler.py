"""
Callback handler: resolves one SSV callback to a verification outcome.
"""

from __future__ import annotations

from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm

from shared.errors import (
    KeyFetchError,
    KeyNotFoundError,
    MalformedRequestError,
    RewardsException,
    ServiceError,
    SignatureMismatchError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..keys.store import KeyStore
from .canonical import MessageCanonicalizer
from .models import CallbackRequest, VerificationOutcome, VerificationResult
from .signature import SignatureVerifier, load_public_key

# Reported with accepted callbacks for downstream reward granting.
REWARD_FIELDS = ("ad_network", "ad_unit", "reward_item", "reward_amount", "transaction_id", "user_id", "custom_data")


class CallbackHandler:
    """Orchestrates key lookup, canonicalization and signature verification."""

    def __init__(
        self,
        key_store: KeyStore,
        verifier: Optional[SignatureVerifier] = None,
        canonicalizer: Optional[MessageCanonicalizer] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.key_store = key_store
        self.verifier = verifier or SignatureVerifier()
        self.canonicalizer = canonicalizer or MessageCanonicalizer()
        self.metrics = metrics
        self.logger = get_logger("rewards.handler")

    async def handle(self, request: CallbackRequest) -> VerificationResult:
        """Verify a callback. Never raises; every path ends in a result."""
        key_id = request.key_id
        signature = request.signature

        if not key_id or not signature:
            self.logger.info(
                "Callback without key_id/signature treated as connectivity probe",
                has_key_id=bool(key_id),
                has_signature=bool(signature),
            )
            return self._finish(VerificationResult(outcome=VerificationOutcome.INDETERMINATE))

        try:
            await self._verify(request, key_id, signature)
        except RewardsException as exc:
            if isinstance(exc, ServiceError):
                log = self.logger.error
            elif isinstance(exc, KeyFetchError):
                log = self.logger.warning
            else:
                log = self.logger.info
            log("Callback rejected", key_id=key_id, **exc.to_dict())
            return self._finish(
                VerificationResult(outcome=VerificationOutcome.REJECTED, reason=exc.code, key_id=key_id)
            )
        except Exception as exc:
            error = ServiceError(f"Unexpected verification failure: {exc}", details={"type": type(exc).__name__})
            self.logger.error("Callback verification failed unexpectedly", key_id=key_id, exc_info=exc, **error.to_dict())
            return self._finish(
                VerificationResult(outcome=VerificationOutcome.REJECTED, reason=error.code, key_id=key_id)
            )

        self.logger.info(
            "reward_verified",
            key_id=key_id,
            **{name: request.get(name) for name in REWARD_FIELDS if request.get(name) is not None},
        )
        return self._finish(VerificationResult(outcome=VerificationOutcome.ACCEPTED, key_id=key_id))

    async def _verify(self, request: CallbackRequest, key_id: str, signature: str) -> None:
        """Raise a RewardsException describing why the callback is not trusted."""
        # KeyFetchError propagates as-is when no key set could ever be loaded.
        pem = await self.key_store.get_key_pem(key_id)
        if pem is None:
            raise KeyNotFoundError(key_id)

        try:
            load_public_key(pem)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise ServiceError("Malformed verifier public key", details={"key_id": key_id, "error": str(exc)})

        message = self.canonicalizer.canonicalize(request.raw_query)
        if not message:
            raise MalformedRequestError("Nothing left to verify after removing the signature")

        if not self.verifier.verify(message, signature, pem):
            raise SignatureMismatchError(details={"key_id": key_id})

    def _finish(self, result: VerificationResult) -> VerificationResult:
        if self.metrics is not None:
            self.metrics.record_verification(result.outcome.value, result.reason)
        return result
