"""Asyncio-based bridge broadcasting one serial port to many TCP clients."""

import asyncio
import logging
from typing import Optional, Set

import serial

from serialcast.channel import Channel, ChannelClosed
from serialcast.config import BridgeConfig
from serialcast.registry import ClientRegistry, RegistryPoisoned, fan_out
from serialcast.serial_port import describe_serial, open_serial

logger = logging.getLogger("serialcast")

READ_SIZE = 1024


def configure_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def read_chunk(source, size: int = READ_SIZE) -> bytes:
    """Blocking read of at most ``size`` bytes; ``b""`` means the read timed out.

    Waits for the first byte (bounded by the source's timeout), then takes
    whatever else is already buffered so a chunk is not held back waiting to
    fill up.
    """
    data = source.read(1)
    if data:
        waiting = min(source.in_waiting, size - 1)
        if waiting > 0:
            data += source.read(waiting)
    return data


async def read_serial(source, chunks: Channel, chunk_size: int = READ_SIZE):
    """Read from serial and publish each chunk until the source fails."""
    try:
        while True:
            try:
                data = await asyncio.to_thread(read_chunk, source, chunk_size)
            except (serial.SerialException, OSError) as e:
                logger.error("Reading from serial port failed: %s", e)
                break
            if not data:
                continue
            try:
                await chunks.send(data)
            except ChannelClosed as e:
                logger.error("Error sending data from serial port reader: %s", e)
                break
    finally:
        chunks.close()


def _peer_name(writer: asyncio.StreamWriter) -> str:
    peer = writer.get_extra_info("peername")
    if not peer:
        return "?"
    return f"{peer[0]}:{peer[1]}"


async def write_client(channel: Channel, writer: asyncio.StreamWriter):
    """Write every chunk from ``channel`` to one TCP client, in order.

    Ends on the first write error or when the channel closes. Closing the
    receiver side on the way out is what gets the client pruned from the
    registry on the next broadcast.
    """
    peer = _peer_name(writer)
    logger.info("New connection from: %s", peer)
    try:
        async for chunk in channel:
            writer.write(chunk)
            await writer.drain()
    except OSError as e:
        logger.info("Closed connection from: %s: %s", peer, e)
    else:
        logger.info("Closed connection from: %s", peer)
    finally:
        channel.close_receiver()
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


async def accept_clients(
    host: str,
    port: int,
    registry: ClientRegistry,
    listening: Optional[asyncio.Future] = None,
):
    """Accept TCP clients, register a channel for each and stream to it.

    A bind failure is logged and ends only this task; the serial side keeps
    running without observers. ``listening``, when given, is resolved with the
    bound (host, port) or with the bind error.
    """
    client_tasks: Set[asyncio.Task] = set()

    async def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        task = asyncio.current_task()
        client_tasks.add(task)
        try:
            channel = Channel()
            try:
                await registry.register(channel)
            except RegistryPoisoned as e:
                logger.error("Rejecting connection from %s: %s", _peer_name(writer), e)
                writer.close()
                return
            await write_client(channel, writer)
        finally:
            client_tasks.discard(task)

    try:
        server = await asyncio.start_server(on_connect, host, port)
    except OSError as e:
        logger.error("Unable to listen on %s:%s: %s", host, port, e)
        if listening is not None and not listening.done():
            listening.set_exception(e)
        return
    bound = server.sockets[0].getsockname()[:2]
    logger.info("Listening on: %s:%s", bound[0], bound[1])
    if listening is not None and not listening.done():
        listening.set_result(bound)
    try:
        # start_server is already serving; park here until cancelled
        await asyncio.get_running_loop().create_future()
    finally:
        server.close()
        for task in list(client_tasks):
            task.cancel()
        await asyncio.gather(*client_tasks, return_exceptions=True)
        await server.wait_closed()
        logger.info("Stopped listening on: %s:%s", bound[0], bound[1])


async def run_bridge_async(
    source,
    host: str,
    port: int,
    chunk_size: int = READ_SIZE,
    registry: Optional[ClientRegistry] = None,
    listening: Optional[asyncio.Future] = None,
):
    """Start the reader and the acceptor and broadcast until both have ended.

    The two sides fail independently: a dead serial port leaves the listener
    accepting clients that get no data, and a failed bind leaves the reader
    draining the port with nobody listening.
    """
    if registry is None:
        registry = ClientRegistry()
    chunks = Channel(maxsize=1)
    reader_task = asyncio.create_task(read_serial(source, chunks, chunk_size))
    acceptor_task = asyncio.create_task(accept_clients(host, port, registry, listening))
    try:
        await fan_out(chunks, registry)
        await reader_task
        logger.info("Serial data path ended")
        await acceptor_task
    finally:
        chunks.close_receiver()
        reader_task.cancel()
        acceptor_task.cancel()
        await asyncio.gather(reader_task, acceptor_task, return_exceptions=True)


def run_bridge(config: BridgeConfig):
    """Synchronous entry: open the serial port and run the bridge until interrupted."""
    ser = open_serial(config.device, config.line)
    logger.info("Using serial port: %s", describe_serial(ser))
    try:
        asyncio.run(run_bridge_async(ser, config.listen_host, config.listen_port))
    except KeyboardInterrupt:
        pass
    finally:
        ser.close()
        logger.info("Serial closed")
