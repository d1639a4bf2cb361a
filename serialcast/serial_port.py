"""Opening and enumerating serial ports with pyserial."""

import logging
import sys

import serial
from serial.tools import list_ports

from serialcast.config import LineSettings

logger = logging.getLogger("serialcast")

_BYTESIZES = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}
_PARITIES = {
    "N": serial.PARITY_NONE,
    "O": serial.PARITY_ODD,
    "E": serial.PARITY_EVEN,
}
_STOPBITS = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}


def open_serial(device: str, line: LineSettings) -> serial.Serial:
    """Open the serial port with the given line settings.

    ESP32 consoles use 115200 8N1, MBUS slaves 2400 8E1. The read timeout
    bounds how long a single read blocks when the device is silent.
    """
    return serial.Serial(
        port=device,
        baudrate=line.baud_rate,
        bytesize=_BYTESIZES[line.data_bits],
        parity=_PARITIES[line.parity],
        stopbits=_STOPBITS[line.stop_bits],
        rtscts=line.flow_control == "H",
        xonxoff=line.flow_control == "S",
        timeout=line.timeout,
    )


def describe_serial(ser: serial.Serial) -> str:
    flow = "rtscts" if ser.rtscts else "xonxoff" if ser.xonxoff else "none"
    return (
        f"{ser.port} @ {ser.baudrate} baud "
        f"{ser.bytesize}{ser.parity}{ser.stopbits:g} flow={flow} timeout={ser.timeout}s"
    )


def format_port(port) -> str:
    """One line per port; USB ports carry their VID:PID and identity strings."""
    if port.vid is not None and port.pid is not None:
        fields = [
            f"{port.device} - USB: ID {port.vid:04x}:{port.pid:04x}",
            port.manufacturer or "",
            port.product or "",
            f"serial {port.serial_number}" if port.serial_number else "",
        ]
        return " ".join(fields).rstrip()
    return f"{port.device} - {port.description}"


def list_available_ports(out=None) -> int:
    """Print the available serial ports and return how many were found."""
    out = out or sys.stdout
    ports = sorted(list_ports.comports(), key=lambda p: p.device)
    if not ports:
        logger.warning("No serial ports detected!")
        return 0
    for port in ports:
        print(format_port(port), file=out)
    return len(ports)
