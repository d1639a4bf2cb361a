"""Entry point: parse config, then list serial ports or run the broadcast bridge."""

import logging
import sys

import serial

from serialcast.bridge import configure_logging, run_bridge
from serialcast.config import parse_args
from serialcast.serial_port import list_available_ports

logger = logging.getLogger("serialcast")


def main(argv=None):
    configure_logging()
    try:
        config = parse_args(argv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if config.verbose:
        logger.setLevel(logging.DEBUG)
    if config.device is None or config.list_ports:
        list_available_ports()
        return
    try:
        run_bridge(config)
    except serial.SerialException as e:
        logger.error("Unable to open serial port %s: %s", config.device, e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
