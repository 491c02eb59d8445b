"""Pydantic models for provider records."""

from pyprov.models._base import ProvBaseModel, ProvEnum
from pyprov.models.provider import Provider, ProviderModel, ProviderType, ProviderUpdate

__all__ = [
    "ProvBaseModel",
    "ProvEnum",
    "Provider",
    "ProviderModel",
    "ProviderType",
    "ProviderUpdate",
]
