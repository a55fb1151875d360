"""
bpbin - Bus Pirate binary mode driver

Drives a Bus Pirate v3/v4 through its binary ("BBIO") interface: puts the
probe into bit-bang mode, switches it into I2C mode and runs I2C
transactions, either strictly byte by byte or with the faster non-strict
bulk write-then-read command.

Usage:
    # Command-line interface
    bpbin detect                    # Find connected Bus Pirates
    bpbin i2c scan                  # Probe 7 bit addresses 0x08-0x77
    bpbin i2c read 0x50 0x00 16     # Read 16 bytes from register 0x00

    # Python API
    from bpbin import BusPirate, SerialTransport, SerialConfig
    with BusPirate(SerialTransport(SerialConfig(port="/dev/ttyUSB0"))) as bp:
        i2c = bp.enter_nonstrict_i2c_mode()
        buf = bytearray(16)
        i2c.transact_8x8(0x50, 0x00, b"", buf)
"""

__version__ = "0.1.0"

from .config import SerialConfig, SessionPolicy
from .errors import (
    BusPirateError,
    ModeError,
    ProtocolFramingError,
    UnexpectedResponseError,
    TransportError,
    TransportTimeout,
    HandshakeError,
    HandshakeExhaustedError,
    TransitionError,
    BoundsError,
    NackError,
    NoSuchDeviceError,
)
from .i2c import BusPirateI2C, NonStrictI2C, I2CAddress
from .modes import Mode
from .session import BusPirate
from .transport import Transport, SerialTransport
from .detect import detect, list_devices, find_port

__all__ = [
    "BusPirate",
    "BusPirateI2C",
    "NonStrictI2C",
    "I2CAddress",
    "Mode",
    "Transport",
    "SerialTransport",
    "SerialConfig",
    "SessionPolicy",
    "BusPirateError",
    "ModeError",
    "ProtocolFramingError",
    "UnexpectedResponseError",
    "TransportError",
    "TransportTimeout",
    "HandshakeError",
    "HandshakeExhaustedError",
    "TransitionError",
    "BoundsError",
    "NackError",
    "NoSuchDeviceError",
    "detect",
    "list_devices",
    "find_port",
    "__version__",
]
