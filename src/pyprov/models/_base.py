"""Base model and enum for provider records.

Every provider model inherits from :class:`ProvBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase store keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops ``None`` values and
  blank strings so the field default is used.
* ``frozen=True`` so a cached instance can be shared by reference.

String enums inherit from :class:`ProvEnum` which resolves any value
without a mapped member to ``OTHER`` instead of raising ``ValueError``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class ProvEnum(StrEnum):
    """Base for string enums read from the store.

    Every subclass **must** define ``OTHER``.
    """

    @classmethod
    def _missing_(cls, value: object) -> ProvEnum:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        # pylint: disable=no-member
        other: ProvEnum = cls.OTHER  # type: ignore[attr-defined]
        return other


class ProvBaseModel(BaseModel):
    """Base for provider records and their nested models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip() and key not in {"apiKey", "api_key"}:
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return ProvBaseModel._clean_dict(values)
