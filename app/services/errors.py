"""Domain errors raised by the registration core.

Routers do not translate these one by one; ``app.main`` registers a handler per
family so the HTTP status stays consistent across endpoints.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

# Request-level prefixes FastAPI puts in front of field locations.
_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


class RegistrationError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FormValidationError(RegistrationError):
    status_code = 422

    def __init__(self, errors: dict[str, str], message: str = "Form validation failed") -> None:
        super().__init__(message)
        self.errors = dict(errors)


def field_errors(raw_errors: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """Collapse pydantic error dicts into one message per field (first one wins)."""

    errors: dict[str, str] = {}
    for err in raw_errors:
        loc = [str(part) for part in (err.get("loc") or ())]
        if len(loc) > 1 and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        field = ".".join(loc) or "__root__"
        message = str(err.get("msg") or "Invalid value").removeprefix("Value error, ")
        errors.setdefault(field, message)
    return errors


class AuthorizationError(RegistrationError):
    status_code = 403


class ProfileNotFoundError(RegistrationError):
    status_code = 404


class ConflictError(RegistrationError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    pass


class ProfileLockedError(ConflictError):
    def __init__(self, message: str = "Registration already submitted; the form is read-only") -> None:
        super().__init__(message)


class UploadInProgressError(ConflictError):
    def __init__(self, message: str = "A photo upload is still in progress") -> None:
        super().__init__(message)


class PassIdConflictError(ConflictError):
    """Candidate pass id rejected by the unique constraint. Retried by the issuer."""


class UpstreamError(RegistrationError):
    status_code = 503


class PersistenceError(UpstreamError):
    pass


class StoreBusyError(PersistenceError):
    """The database refused a write because another writer held the lock."""


class StorageError(UpstreamError):
    pass


class RenderError(UpstreamError):
    def __init__(self, message: str = "rendering failed") -> None:
        super().__init__(message)
