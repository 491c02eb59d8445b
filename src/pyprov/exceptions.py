"""Custom exception hierarchy for pyprov."""

from __future__ import annotations


class PyprovError(Exception):
    """Base exception for all pyprov errors."""


class PyprovConfigError(PyprovError):
    """Invalid or missing configuration."""


class EntityNotFoundError(PyprovError):
    """The requested id has no corresponding record in the store."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_id!r}")


class PersistenceError(PyprovError):
    """A gateway operation was rejected (network, storage or validation failure)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        entity_id: str | None = None,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.operation = operation
        self.entity_id = entity_id
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class UninitializedDefaultError(PyprovError):
    """The default entity was requested before a successful ``initialize()``.

    Snapshot readers that prefer a ``None`` over an exception should use
    :meth:`pyprov.service.ProviderService.get_default_snapshot`.
    """
