# vetnet/core/errors.py

from __future__ import annotations


class NetError(Exception):
    """
    Base class for every business-rule failure raised by the net services.

    Each subclass carries the HTTP status the API layer answers with, so
    routes never need to translate error kinds by hand.
    """

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(NetError):
    """Malformed input, e.g. an empty net name."""

    status_code = 400


class NotFoundError(NetError):
    """Unknown net, participant or speak request."""

    status_code = 404


class AuthorizationError(NetError):
    """Actor lacks the role the operation requires."""

    status_code = 403


class InvalidStateError(NetError):
    """Operation not valid for the entity's current state (ended net, resolved request)."""

    status_code = 409


class CapacityError(NetError):
    """Speaker cap reached."""

    status_code = 400


class UnavailableError(NetError):
    """External media transport is not configured."""

    status_code = 503
