"""
Signature verification for SSV callbacks.

The network signs callbacks with ECDSA over P-256 using SHA-256 and
publishes the public keys as PEM. The digest is pinned here rather than
inferred from the key, and keys of any other type or curve are treated
as an algorithm mismatch.
"""

from __future__ import annotations

import base64
import binascii
from functools import lru_cache
from typing import Tuple, Type

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from shared.logging import get_logger

DEFAULT_CURVES: Tuple[Type[ec.EllipticCurve], ...] = (ec.SECP256R1,)


def decode_url_safe_signature(signature: str) -> bytes:
    """Decode URL-safe base64 with or without ``=`` padding.

    Raises binascii.Error (a ValueError) on characters outside the alphabet.
    """
    value = str(signature).strip().replace("-", "+").replace("_", "/")
    value += "=" * (-len(value) % 4)
    return base64.b64decode(value, validate=True)


@lru_cache(maxsize=32)
def load_public_key(pem: str):
    """Parse a PEM public key; memoised since the same few keys verify every callback."""
    return serialization.load_pem_public_key(pem.encode("utf-8"))


class SignatureVerifier:
    """Checks a callback signature against a published PEM key."""

    def __init__(self, allowed_curves: Tuple[Type[ec.EllipticCurve], ...] = DEFAULT_CURVES, allow_rsa: bool = True):
        self.allowed_curves = allowed_curves
        self.allow_rsa = allow_rsa
        self.logger = get_logger("rewards.signature")

    def verify(self, message: bytes, signature: str, pem: str) -> bool:
        """Return True only if ``signature`` is a valid signature of ``message``.

        Never raises: decode errors, unparsable keys, unsupported key types
        and invalid signatures all return False.
        """
        if not message:
            return False

        try:
            signature_bytes = decode_url_safe_signature(signature)
        except (binascii.Error, ValueError) as exc:
            self.logger.info("Signature is not valid base64", error=str(exc))
            return False
        if not signature_bytes:
            return False

        try:
            public_key = load_public_key(pem)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            self.logger.error("Malformed verifier public key", error=str(exc))
            return False

        try:
            return self._verify_with_key(public_key, message, signature_bytes)
        except InvalidSignature:
            return False
        except (ValueError, TypeError) as exc:
            self.logger.warning("Signature verification error", error=str(exc))
            return False

    def _verify_with_key(self, public_key, message: bytes, signature_bytes: bytes) -> bool:
        if isinstance(public_key, ec.EllipticCurvePublicKey):
            if not isinstance(public_key.curve, self.allowed_curves):
                self.logger.warning("Unsupported curve for verifier key", curve=public_key.curve.name)
                return False
            public_key.verify(signature_bytes, message, ec.ECDSA(hashes.SHA256()))
            return True

        if self.allow_rsa and isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature_bytes, message, padding.PKCS1v15(), hashes.SHA256())
            return True

        self.logger.warning("Unsupported verifier key type", key_type=type(public_key).__name__)
        return False
