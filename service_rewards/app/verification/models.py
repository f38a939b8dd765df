"""
Models for reward callback verification.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union
from urllib.parse import unquote_plus

from pydantic import BaseModel, ConfigDict


class VerificationOutcome(str, Enum):
    """Terminal state of a single callback verification."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    # Missing key_id/signature: the console's "verify URL" probe, not a trust decision.
    INDETERMINATE = "indeterminate"


class VerificationResult(BaseModel):
    """Outcome of a callback verification plus the reason code when rejected."""

    model_config = ConfigDict(frozen=True)

    outcome: VerificationOutcome
    reason: Optional[str] = None
    key_id: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is VerificationOutcome.ACCEPTED


@dataclass(frozen=True)
class CallbackRequest:
    """Inbound callback query, kept exactly as received."""

    raw_query: str
    params: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_query_string(cls, raw_query: Union[str, bytes, None]) -> "CallbackRequest":
        if isinstance(raw_query, bytes):
            raw_query = raw_query.decode("utf-8", "surrogateescape")
        raw_query = raw_query or ""

        params = []
        for token in raw_query.split("&"):
            if not token:
                continue
            name, _, value = token.partition("=")
            params.append((name, value))
        return cls(raw_query=raw_query, params=tuple(params))

    def get(self, name: str) -> Optional[str]:
        """Decoded value of the first ``name`` parameter; None if absent or empty."""
        for param_name, raw_value in self.params:
            if unquote_plus(param_name) == name:
                value = unquote_plus(raw_value)
                return value or None
        return None

    @property
    def key_id(self) -> Optional[str]:
        return self.get("key_id")

    @property
    def signature(self) -> Optional[str]:
        return self.get("signature")
