"""Broker clients."""

from fxapp.clients.base import BrokerClient, OpenPosition
from fxapp.clients.oanda import OandaClient
from fxapp.clients.paper import PaperBroker

__all__ = [
    "BrokerClient",
    "OpenPosition",
    "OandaClient",
    "PaperBroker",
]
