"""Service configuration for pyprov."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyprov.exceptions import PyprovConfigError
from pyprov.state.policy import ChangeDetection


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ProvConfig:
    """Service configuration.

    Parameters
    ----------
    change_detection : ChangeDetection
        How the cache decides that a put actually changed an entry.
        ``"value"`` compares with ``==`` and keeps the existing reference
        when the new value is equal; ``"identity"`` notifies on any new
        reference.
    max_entries : int
        Upper bound on regular cache entries.  ``0`` disables eviction.
        Optimistic entries, entries with pending writes and entries with
        live subscribers are never evicted, so the bound is soft.
    log_payloads : bool
        Include (redacted) changes and entity values in DEBUG logs.
    """

    change_detection: ChangeDetection = ChangeDetection.VALUE
    max_entries: int = 0
    log_payloads: bool = False

    def __post_init__(self) -> None:
        try:
            mode = ChangeDetection(self.change_detection)
        except ValueError as exc:
            raise PyprovConfigError(f"Unknown change_detection: {self.change_detection!r}") from exc
        object.__setattr__(self, "change_detection", mode)
        if self.max_entries < 0:
            raise PyprovConfigError("max_entries must be >= 0")

    @classmethod
    def from_env(cls, **overrides: Any) -> ProvConfig:
        """Create configuration from ``PYPROV_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        mode_env = env.get("PYPROV_CHANGE_DETECTION")
        if mode_env is not None and "change_detection" not in overrides:
            config_kwargs["change_detection"] = mode_env.strip().lower()

        max_env = env.get("PYPROV_MAX_ENTRIES")
        if max_env is not None and "max_entries" not in overrides:
            try:
                config_kwargs["max_entries"] = int(max_env)
            except ValueError as exc:
                raise PyprovConfigError(f"PYPROV_MAX_ENTRIES is not an integer: {max_env!r}") from exc

        if "log_payloads" not in overrides:
            config_kwargs["log_payloads"] = _env_bool(env.get("PYPROV_LOG_PAYLOADS"), False)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
