"""
Shared error types for the reward verification service.

Every failure on the verification path maps to one of these codes. They are
raised inside the core components and resolved to an accept/reject decision
by the callback handler; none of them is meant to reach the HTTP layer.
"""

from typing import Dict, Any, Optional


class RewardsException(Exception):
    """Base exception for reward verification."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a log-friendly dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class KeyFetchError(RewardsException):
    """Every key distribution source was unreachable or returned an unusable payload."""

    def __init__(self, message: str = "Unable to fetch verifier keys", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_FETCH_FAILURE", message, details)


class KeyNotFoundError(RewardsException):
    """Key set fetched fine but holds no key with the requested id."""

    def __init__(self, key_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_NOT_FOUND", f"Verifier key not found: {key_id}", details)


class MalformedRequestError(RewardsException):
    """Callback carries nothing that can be verified."""

    def __init__(self, message: str = "Malformed callback request", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_REQUEST", message, details)


class SignatureMismatchError(RewardsException):
    """Signature did not verify against the canonical message."""

    def __init__(self, message: str = "Signature mismatch", details: Optional[Dict[str, Any]] = None):
        super().__init__("SIGNATURE_MISMATCH", message, details)


class ServiceError(RewardsException):
    """Unanticipated internal failure."""

    def __init__(self, message: str = "Internal failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)
