"""
Verifier key package.

Fetches the ad network's published verifier keys and caches them for a
bounded TTL. Keys are selected by key id; an unknown id triggers one
forced refresh to pick up rotated keys.
"""

from .store import KeyCache, KeySet, KeyStore, VerifierKey

__all__ = ["KeyCache", "KeySet", "KeyStore", "VerifierKey"]
