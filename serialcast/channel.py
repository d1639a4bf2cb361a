"""One-way FIFO channel of byte chunks between two asyncio tasks."""

import asyncio

_EOF = object()


class ChannelClosed(Exception):
    """The other side of the channel has gone away."""


class Channel:
    """An asyncio.Queue of chunks with one sending side and one receiving side.

    Unbounded unless ``maxsize`` is given. Either side can close:

    * ``close()`` ends the stream from the sender; the receiver still drains
      whatever is queued, then ``recv()`` raises ChannelClosed.
    * ``close_receiver()`` signals the receiver is gone; queued chunks are
      dropped and every later send raises ChannelClosed.

    Chunks are stored by reference, so one ``bytes`` object broadcast to many
    channels is never copied.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False
        self._receiver_closed = False
        self._eof_queued = False

    def __len__(self) -> int:
        return self._queue.qsize() - self._eof_queued

    def __repr__(self) -> str:
        state = "receiver-closed" if self._receiver_closed else "closed" if self._closed else "open"
        return f"<Channel {state} queued={len(self)} maxsize={self._queue.maxsize}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def receiver_closed(self) -> bool:
        return self._receiver_closed

    def full(self) -> bool:
        return self._queue.full()

    def _check_open(self):
        if self._receiver_closed:
            raise ChannelClosed("receiver is gone")
        if self._closed:
            raise ChannelClosed("channel closed for sending")

    def _discard_pending(self):
        while not self._queue.empty():
            self._queue.get_nowait()
        self._eof_queued = False

    def send_nowait(self, chunk: bytes):
        """Enqueue without waiting; raise ChannelClosed or asyncio.QueueFull."""
        self._check_open()
        self._queue.put_nowait(chunk)

    async def send(self, chunk: bytes):
        """Enqueue, waiting for room if the channel is bounded."""
        self._check_open()
        await self._queue.put(chunk)
        if self._receiver_closed:
            # woken by close_receiver draining the queue
            self._discard_pending()
            raise ChannelClosed("receiver is gone")

    async def recv(self) -> bytes:
        """Return the oldest chunk; raise ChannelClosed once closed and drained."""
        if self._queue.empty() and (self._closed or self._receiver_closed):
            raise ChannelClosed("channel closed")
        chunk = await self._queue.get()
        if chunk is _EOF:
            self._eof_queued = False
            raise ChannelClosed("channel closed")
        return chunk

    def close(self):
        self._closed = True
        # only an empty queue can have a receiver parked in get()
        if self._queue.empty():
            self._queue.put_nowait(_EOF)
            self._eof_queued = True

    def close_receiver(self):
        self._receiver_closed = True
        self._discard_pending()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self.recv()
        except ChannelClosed:
            raise StopAsyncIteration from None
