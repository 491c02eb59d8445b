"""Gateway adapters for :class:`pyprov.gateway.PersistenceGateway`."""

from pyprov.gateways.http import HttpGateway
from pyprov.gateways.memory import InMemoryGateway

__all__ = ["HttpGateway", "InMemoryGateway"]
