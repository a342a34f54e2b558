"""Adapter modules for sockets and external integrations."""

from .mqtt import MQTTClient, MQTTConnectionError
from .udp import Channel, ChannelFactory, DatagramChannel, Endpoint

__all__ = [
    "Channel",
    "ChannelFactory",
    "DatagramChannel",
    "Endpoint",
    "MQTTClient",
    "MQTTConnectionError",
]
