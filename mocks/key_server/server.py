"""
Mock AdMob key distribution host and callback signer.

Serves ``/admob/reward/verifier-keys.json`` from freshly generated P-256
keys and signs callback query strings the way the network does, so the
rewards service can be exercised locally without real ad traffic.
"""

import base64
import itertools
from typing import Dict, List, Optional
from urllib.parse import urlencode

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import FastAPI, HTTPException, Request

from shared.logging import get_logger

KEYS_PATH = "/admob/reward/verifier-keys.json"


def public_pem(private_key: ec.EllipticCurvePrivateKey) -> str:
    """PEM (SubjectPublicKeyInfo) of the key's public half."""
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def sign_message(private_key: ec.EllipticCurvePrivateKey, message: bytes) -> str:
    """ECDSA-SHA256 signature in unpadded URL-safe base64."""
    signature = private_key.sign(message, ec.ECDSA(hashes.SHA256()))
    return base64.urlsafe_b64encode(signature).decode("ascii").rstrip("=")


def sign_callback_query(private_key: ec.EllipticCurvePrivateKey, query: str, key_id: str) -> str:
    """Append ``key_id`` and ``signature`` to ``query`` as the network does."""
    signed_part = f"{query}&key_id={key_id}" if query else f"key_id={key_id}"
    return f"{signed_part}&signature={sign_message(private_key, signed_part.encode('utf-8'))}"


class MockKeyServer:
    """Mock key distribution host."""

    def __init__(self, key_id_field: str = "keyId", initial_keys: int = 1):
        self.key_id_field = key_id_field
        self.logger = get_logger("mock.key_server")
        self.app = FastAPI(title="Mock AdMob Key Server", version="1.0.0")
        self.private_keys: Dict[str, ec.EllipticCurvePrivateKey] = {}
        self.requests_served = 0
        self._ids = itertools.count(1000000001)

        for _ in range(initial_keys):
            self.rotate()

        self._setup_routes()

    def rotate(self, retire: Optional[str] = None) -> str:
        """Publish a new key, optionally retiring an old one. Returns the new key id."""
        key_id = str(next(self._ids))
        self.private_keys[key_id] = ec.generate_private_key(ec.SECP256R1())
        if retire is not None:
            self.private_keys.pop(retire, None)
        self.logger.info("Key rotated", key_id=key_id, retired=retire)
        return key_id

    def key_document(self) -> Dict[str, List[Dict[str, object]]]:
        return {
            "keys": [
                {
                    self.key_id_field: int(key_id),
                    "pem": public_pem(private_key),
                    "base64": "".join(public_pem(private_key).splitlines()[1:-1]),
                }
                for key_id, private_key in self.private_keys.items()
            ]
        }

    def signed_query(self, key_id: str, **params: str) -> str:
        """Signed callback query for ``params`` using ``key_id``."""
        if key_id not in self.private_keys:
            raise KeyError(key_id)
        return sign_callback_query(self.private_keys[key_id], urlencode(params), key_id)

    def _setup_routes(self):
        """Set up mock key server routes."""

        @self.app.get(KEYS_PATH)
        async def verifier_keys():
            """Published verifier keys."""
            self.requests_served += 1
            return self.key_document()

        @self.app.post("/rotate")
        async def rotate_key(retire: Optional[str] = None):
            """Publish a new key."""
            return {"key_id": self.rotate(retire=retire)}

        @self.app.get("/sign")
        async def sign(request: Request, key_id: Optional[str] = None):
            """Return a signed callback query for the given parameters."""
            key_id = key_id or next(iter(self.private_keys), None)
            if key_id not in self.private_keys:
                raise HTTPException(status_code=404, detail="Key not found")
            params = {k: v for k, v in request.query_params.items() if k != "key_id"}
            return {"query": self.signed_query(key_id, **params)}


def create_app():
    """Create mock key server application."""
    server = MockKeyServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
