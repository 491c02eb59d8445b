"""pyprov - Reactive provider cache with optimistic updates."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyprov")
except PackageNotFoundError:
    __version__ = "0+local"
from pyprov.config import ProvConfig
from pyprov.exceptions import (
    EntityNotFoundError,
    PersistenceError,
    PyprovConfigError,
    PyprovError,
    UninitializedDefaultError,
)
from pyprov.gateway import PersistenceGateway
from pyprov.gateways import HttpGateway, InMemoryGateway
from pyprov.models import Provider, ProviderModel, ProviderType, ProviderUpdate
from pyprov.service import ProviderService
from pyprov.state.events import ChangeEvent, ChangeSource
from pyprov.state.loading import LoadState
from pyprov.state.policy import ChangeDetection
from pyprov.state.subscriptions import Subscription

__all__ = [
    "__version__",
    "ChangeDetection",
    "ChangeEvent",
    "ChangeSource",
    "EntityNotFoundError",
    "HttpGateway",
    "InMemoryGateway",
    "LoadState",
    "PersistenceError",
    "PersistenceGateway",
    "ProvConfig",
    "Provider",
    "ProviderModel",
    "ProviderService",
    "ProviderType",
    "ProviderUpdate",
    "PyprovConfigError",
    "PyprovError",
    "Subscription",
    "UninitializedDefaultError",
]
