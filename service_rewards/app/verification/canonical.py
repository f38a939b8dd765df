"""
Canonical message reconstruction for SSV callbacks.

The network signs the query string as it sends it. Re-parsing and
re-encoding the parameters would change bytes (ordering, ``+`` vs
``%20``, case of hex escapes), so the message is rebuilt from the raw
wire query by dropping the ``signature`` parameter and nothing else.
"""

from typing import Optional, Union

SIGNATURE_PARAM = b"signature"


class MessageCanonicalizer:
    """Rebuilds the signed byte string from a raw query string."""

    def __init__(self, signature_param: bytes = SIGNATURE_PARAM):
        self.signature_param = signature_param

    def canonicalize(self, raw_query: Optional[Union[str, bytes]]) -> bytes:
        """Return the signed message, or b"" when there is nothing to verify."""
        if not raw_query:
            return b""
        if isinstance(raw_query, str):
            raw_query = raw_query.encode("utf-8", "surrogateescape")

        kept = [
            token
            for token in raw_query.split(b"&")
            if token.partition(b"=")[0] != self.signature_param
        ]
        return b"&".join(kept)


_default_canonicalizer = MessageCanonicalizer()


def canonicalize(raw_query: Optional[Union[str, bytes]]) -> bytes:
    """Module-level shortcut for the default canonicalizer."""
    return _default_canonicalizer.canonicalize(raw_query)
