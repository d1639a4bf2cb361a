"""Configuration and command-line argument parsing for the serial broadcast bridge."""

import argparse
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger("serialcast")


DEFAULT_LISTEN = "127.0.0.1:4567"
DEFAULT_BAUD = 115200
DEFAULT_DATA_BITS = 8
DEFAULT_PARITY = "N"
DEFAULT_STOP_BITS = 1
DEFAULT_FLOW_CONTROL = "N"
DEFAULT_TIMEOUT = 0.1

VALID_DATA_BITS = (5, 6, 7, 8)
VALID_PARITY = ("N", "O", "E")
VALID_STOP_BITS = (1, 2)
VALID_FLOW_CONTROL = ("N", "H", "S")


@dataclass(frozen=True)
class LineSettings:
    """Serial line parameters, already checked against the supported values."""

    baud_rate: int = DEFAULT_BAUD
    data_bits: int = DEFAULT_DATA_BITS
    parity: str = DEFAULT_PARITY
    stop_bits: int = DEFAULT_STOP_BITS
    flow_control: str = DEFAULT_FLOW_CONTROL
    timeout: float = DEFAULT_TIMEOUT


@dataclass(frozen=True)
class BridgeConfig:
    device: Optional[str]
    listen_host: str
    listen_port: int
    line: LineSettings
    list_ports: bool = False
    verbose: bool = False


def _pick(value, valid, default, label):
    if value in valid:
        return value
    logger.warning("Unsupported %s %r, using %s", label, value, default)
    return default


def normalize_line_settings(
    baud_rate: int = DEFAULT_BAUD,
    data_bits=DEFAULT_DATA_BITS,
    parity=DEFAULT_PARITY,
    stop_bits=DEFAULT_STOP_BITS,
    flow_control=DEFAULT_FLOW_CONTROL,
    timeout: float = DEFAULT_TIMEOUT,
) -> LineSettings:
    """Build LineSettings, replacing unsupported values with the defaults.

    Never raises for an unrecognised data bits / parity / stop bits / flow
    control value; each fallback is logged as a warning instead.
    """
    if isinstance(parity, str):
        parity = parity.upper()
    if isinstance(flow_control, str):
        flow_control = flow_control.upper()
    return LineSettings(
        baud_rate=baud_rate,
        data_bits=_pick(data_bits, VALID_DATA_BITS, DEFAULT_DATA_BITS, "data bits"),
        parity=_pick(parity, VALID_PARITY, DEFAULT_PARITY, "parity"),
        stop_bits=_pick(stop_bits, VALID_STOP_BITS, DEFAULT_STOP_BITS, "stop bits"),
        flow_control=_pick(
            flow_control, VALID_FLOW_CONTROL, DEFAULT_FLOW_CONTROL, "flow control"
        ),
        timeout=timeout,
    )


def parse_listen_address(text: str) -> Tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into its parts."""
    host, sep, port_text = text.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Listen address must be host:port, got {text!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Listen port must be a number, got {port_text!r}") from None
    if not (0 <= port <= 65535):
        raise ValueError("Listen port must be between 0 and 65535")
    return host, port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serialcast",
        description="Broadcast everything read from a serial port to all connected TCP clients.",
    )
    parser.add_argument(
        "device",
        nargs="?",
        help="Serial port to read from (omit to list available ports)",
    )
    parser.add_argument(
        "listen",
        nargs="?",
        default=DEFAULT_LISTEN,
        help=f"Bind to host:port (default: {DEFAULT_LISTEN})",
    )
    parser.add_argument(
        "-L",
        "--list-available-ports",
        action="store_true",
        help="List available serial ports and exit",
    )
    parser.add_argument(
        "-b",
        "--baud-rate",
        type=int,
        default=DEFAULT_BAUD,
        help=f"Baud rate (default: {DEFAULT_BAUD})",
    )
    parser.add_argument(
        "-d",
        "--data-bits",
        type=int,
        default=DEFAULT_DATA_BITS,
        help=f"Data bits, one of 5, 6, 7, 8 (default: {DEFAULT_DATA_BITS})",
    )
    parser.add_argument(
        "-p",
        "--parity",
        default=DEFAULT_PARITY,
        help=f"Parity: [N]one, [O]dd, [E]ven (default: {DEFAULT_PARITY})",
    )
    parser.add_argument(
        "-s",
        "--stop-bits",
        type=int,
        default=DEFAULT_STOP_BITS,
        help=f"Stop bits, 1 or 2 (default: {DEFAULT_STOP_BITS})",
    )
    parser.add_argument(
        "-f",
        "--flow-control",
        default=DEFAULT_FLOW_CONTROL,
        help=f"Flow control: [N]one, [H]ardware, [S]oftware (default: {DEFAULT_FLOW_CONTROL})",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Serial read timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging (per-chunk trace)",
    )
    return parser


def parse_args(argv=None) -> BridgeConfig:
    """Parse command-line arguments and return a validated BridgeConfig."""
    args = build_parser().parse_args(argv)
    _validate(args)
    host, port = parse_listen_address(args.listen)
    line = normalize_line_settings(
        baud_rate=args.baud_rate,
        data_bits=args.data_bits,
        parity=args.parity,
        stop_bits=args.stop_bits,
        flow_control=args.flow_control,
        timeout=args.timeout,
    )
    return BridgeConfig(
        device=args.device,
        listen_host=host,
        listen_port=port,
        line=line,
        list_ports=args.list_available_ports,
        verbose=args.verbose,
    )


def _validate(args):
    """Validate parsed arguments; raise ValueError on invalid values."""
    if args.device is not None and not args.device.strip():
        raise ValueError("Serial port must be non-empty")
    if args.baud_rate <= 0:
        raise ValueError("Baud rate (--baud-rate) must be positive")
    if args.timeout <= 0:
        raise ValueError("Read timeout (--timeout) must be positive")
