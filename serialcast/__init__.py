"""Serial broadcast bridge: stream one serial port to any number of TCP clients."""

from serialcast.bridge import run_bridge, run_bridge_async
from serialcast.channel import Channel, ChannelClosed
from serialcast.registry import ClientRegistry, RegistryPoisoned

__all__ = [
    "Channel",
    "ChannelClosed",
    "ClientRegistry",
    "RegistryPoisoned",
    "run_bridge",
    "run_bridge_async",
]
