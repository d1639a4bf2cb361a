"""Shared fixtures: a scriptable serial port and helpers to drive a running bridge."""
from __future__ import annotations

import asyncio
import sys
import threading
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
_root_str = str(_REPO_ROOT)
if _root_str not in sys.path:
    sys.path.insert(0, _root_str)

from serialcast.bridge import run_bridge_async  # noqa: E402
from serialcast.registry import ClientRegistry  # noqa: E402


class FakeSerial:
    """Thread-safe stand-in for ``serial.Serial`` that the test feeds bytes into.

    ``read`` blocks up to ``timeout`` like a real port and returns ``b""`` when
    nothing arrived. ``fail`` makes the next read with an empty buffer raise.
    """

    def __init__(self, timeout: float = 0.02) -> None:
        self.timeout = timeout
        self.reads = 0
        self.timeouts = 0
        self._buffer = bytearray()
        self._error: BaseException | None = None
        self._cond = threading.Condition()

    def feed(self, data: bytes) -> None:
        with self._cond:
            self._buffer += data
            self._cond.notify_all()

    def fail(self, exc: BaseException) -> None:
        with self._cond:
            self._error = exc
            self._cond.notify_all()

    @property
    def in_waiting(self) -> int:
        with self._cond:
            return len(self._buffer)

    def read(self, size: int = 1) -> bytes:
        with self._cond:
            self.reads += 1
            if not self._buffer and self._error is None:
                self._cond.wait(self.timeout)
            if not self._buffer:
                if self._error is not None:
                    raise self._error
                self.timeouts += 1
                return b""
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data


@pytest.fixture
def fake_serial() -> FakeSerial:
    return FakeSerial()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds or ``timeout`` passes."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class RunningBridge:
    def __init__(self, task: asyncio.Task, registry: ClientRegistry, address) -> None:
        self.task = task
        self.registry = registry
        self.host, self.port = address

    async def connect(self):
        """Open a client connection and wait until the bridge has registered it."""
        expected = len(self.registry) + 1
        reader, writer = await asyncio.open_connection(self.host, self.port)
        await wait_until(lambda: len(self.registry) >= expected)
        return reader, writer

    async def stop(self) -> None:
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass


async def start_bridge(source: FakeSerial, port: int = 0) -> RunningBridge:
    registry = ClientRegistry()
    listening = asyncio.get_running_loop().create_future()
    task = asyncio.create_task(
        run_bridge_async(source, "127.0.0.1", port, registry=registry, listening=listening)
    )
    address = await asyncio.wait_for(listening, 2.0)
    return RunningBridge(task, registry, address)
