from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class TransportError(AppError):
    """The live connection dropped or could not be opened."""


class HeartbeatTimeout(TransportError):
    pass


class AuthExpired(AppError):
    """The identity token is no longer accepted. Fatal to the session."""


class RemoteCallFailure(AppError):
    """A confirmation call to the backend failed or timed out."""

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(detail)


class MalformedEvent(AppError):
    """An inbound payload could not be turned into an event."""


class ConcurrentMutationRejected(ConflictError):
    """Another mutation for the same entity is still in flight."""

    def __init__(self, entity_key: str) -> None:
        self.entity_key = entity_key
        super().__init__(f"Mutation already in progress for {entity_key}")
