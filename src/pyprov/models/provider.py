"""Provider records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pyprov.models._base import ProvBaseModel, ProvEnum


class ProviderType(ProvEnum):
    OPENAI = "openai"
    OPENAI_RESPONSE = "openai-response"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    AZURE_OPENAI = "azure-openai"
    VERTEXAI = "vertexai"
    OLLAMA = "ollama"
    OTHER = "other"


class ProviderModel(ProvBaseModel):
    """A model offered by a provider."""

    id: str
    name: str = ""
    group: str = ""
    owned_by: str | None = None
    description: str | None = None


class Provider(ProvBaseModel):
    """A configured model provider.

    Instances are immutable; updates produce a new instance so snapshot
    readers can rely on reference identity.
    """

    id: str
    type: ProviderType = ProviderType.OPENAI
    name: str = ""
    api_key: str = ""
    api_host: str = ""
    api_version: str | None = None
    models: list[ProviderModel] = Field(default_factory=list)
    enabled: bool = False
    is_system: bool = False
    is_authed: bool = False
    rate_limit: int | None = None
    notes: str | None = None

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        provider_id = value.strip()
        if not provider_id:
            raise ValueError("id must be non-empty")
        return provider_id

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key.strip())


class ProviderUpdate(BaseModel):
    """Partial change for a :class:`Provider`.

    Only fields explicitly set are applied; ``id`` cannot be changed.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    type: ProviderType | None = None
    name: str | None = None
    api_key: str | None = None
    api_host: str | None = None
    api_version: str | None = None
    models: list[ProviderModel] | None = None
    enabled: bool | None = None
    is_system: bool | None = None
    is_authed: bool | None = None
    rate_limit: int | None = None
    notes: str | None = None
