"""
Exceptions raised by the relay core.

Only ingress validation blocks an operation. Upstream failures are reported
through ``ForwardResult`` and never raised, and subscriber transport failures
are absorbed by the transport pumps.
"""
from typing import Any, Dict, List, Optional


class RelayError(Exception):
    """Base exception for relay errors."""
    pass


class IngressValidationError(RelayError):
    """Raised when an ingress payload is missing or has invalid mandatory fields."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "details": self.errors}


class BroadcastUnavailableError(RelayError):
    """Raised when publishing while the broadcaster is not running."""
    pass
