"""Shared registry of client channels and the broadcast loop that feeds them."""

import asyncio
import contextlib
import logging
from typing import List

from serialcast.channel import Channel, ChannelClosed

logger = logging.getLogger("serialcast")


class RegistryPoisoned(RuntimeError):
    """An earlier holder of the registry lock failed while holding it."""


class ClientRegistry:
    """Channels of the currently connected clients behind one asyncio.Lock.

    The acceptor appends under the lock and the broadcast loop prunes under the
    same lock. A channel stays registered until a send into it fails.
    """

    def __init__(self):
        self._clients: List[Channel] = []
        self._lock = asyncio.Lock()
        self._poisoned = False

    def __len__(self) -> int:
        return len(self._clients)

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def snapshot(self) -> List[Channel]:
        return list(self._clients)

    @contextlib.asynccontextmanager
    async def locked(self):
        """Hold the lock and yield the client list.

        An exception escaping the body poisons the registry; from then on
        entering raises RegistryPoisoned.
        """
        async with self._lock:
            if self._poisoned:
                raise RegistryPoisoned("client registry is poisoned")
            try:
                yield self._clients
            except Exception:
                self._poisoned = True
                raise

    async def register(self, channel: Channel):
        async with self.locked() as clients:
            duplicate = channel in clients
            if not duplicate:
                clients.append(channel)
        if duplicate:
            raise ValueError("channel is already registered")

    async def broadcast(self, chunk: bytes) -> int:
        """Hand ``chunk`` to every registered channel; return how many were pruned.

        Channels whose receiver is gone are dropped in the same pass, so a
        chunk either reaches every client still registered afterwards or that
        client is no longer registered.
        """
        async with self.locked() as clients:
            survivors = []
            for channel in clients:
                try:
                    channel.send_nowait(chunk)
                except (ChannelClosed, asyncio.QueueFull):
                    # a bounded channel that fell behind gets its stream ended
                    channel.close()
                    continue
                survivors.append(channel)
            pruned = len(clients) - len(survivors)
            self._clients = survivors
        if pruned:
            logger.debug("Pruned %d closed client(s), %d remaining", pruned, len(survivors))
        return pruned


async def fan_out(chunks: Channel, registry: ClientRegistry):
    """Broadcast every chunk from the reader until its channel closes.

    A poisoned registry skips that chunk and keeps going: losing data during a
    failure is preferred over stalling the clients that remain.
    """
    async for chunk in chunks:
        logger.debug("Broadcasting %d bytes to %d client(s)", len(chunk), len(registry))
        try:
            await registry.broadcast(chunk)
        except RegistryPoisoned as e:
            logger.error("Skipping %d bytes: %s", len(chunk), e)
