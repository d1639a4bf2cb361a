import asyncio

import pytest

from serialcast.channel import Channel, ChannelClosed


def test_recv_returns_chunks_in_send_order() -> None:
    async def _exercise() -> list[bytes]:
        channel = Channel()
        for chunk in (b"A", b"B", b"C"):
            channel.send_nowait(chunk)
        return [await channel.recv() for _ in range(3)]

    assert asyncio.run(_exercise()) == [b"A", b"B", b"C"]


def test_close_lets_receiver_drain_before_ending() -> None:
    async def _exercise() -> list[bytes]:
        channel = Channel()
        channel.send_nowait(b"tail")
        channel.close()
        with pytest.raises(ChannelClosed):
            channel.send_nowait(b"late")
        return [chunk async for chunk in channel]

    assert asyncio.run(_exercise()) == [b"tail"]


def test_send_after_receiver_closed_fails_and_drops_pending() -> None:
    async def _exercise() -> Channel:
        channel = Channel()
        channel.send_nowait(b"pending")
        channel.close_receiver()
        with pytest.raises(ChannelClosed):
            channel.send_nowait(b"next")
        with pytest.raises(ChannelClosed):
            await channel.send(b"next")
        return channel

    channel = asyncio.run(_exercise())
    assert channel.receiver_closed
    assert len(channel) == 0


def test_chunk_is_shared_not_copied() -> None:
    chunk = bytes(range(256)) * 4

    async def _exercise() -> tuple[bytes, bytes]:
        first, second = Channel(), Channel()
        first.send_nowait(chunk)
        second.send_nowait(chunk)
        return await first.recv(), await second.recv()

    a, b = asyncio.run(_exercise())
    assert a is chunk
    assert b is chunk


def test_bounded_channel_blocks_sender_until_receiver_takes_one() -> None:
    async def _exercise() -> None:
        channel = Channel(maxsize=1)
        channel.send_nowait(b"first")
        assert channel.full()
        with pytest.raises(asyncio.QueueFull):
            channel.send_nowait(b"second")

        pending = asyncio.create_task(channel.send(b"second"))
        await asyncio.sleep(0.01)
        assert not pending.done()

        assert await channel.recv() == b"first"
        await asyncio.wait_for(pending, 1.0)
        assert await channel.recv() == b"second"

    asyncio.run(_exercise())


def test_blocked_sender_wakes_with_error_when_receiver_goes_away() -> None:
    async def _exercise() -> None:
        channel = Channel(maxsize=1)
        channel.send_nowait(b"first")
        pending = asyncio.create_task(channel.send(b"second"))
        await asyncio.sleep(0.01)
        channel.close_receiver()
        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(pending, 1.0)

    asyncio.run(_exercise())


def test_waiting_receiver_wakes_on_close() -> None:
    async def _exercise() -> None:
        channel = Channel()
        waiter = asyncio.create_task(channel.recv())
        await asyncio.sleep(0.01)
        assert not waiter.done()
        channel.close()
        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(waiter, 1.0)

    asyncio.run(_exercise())
