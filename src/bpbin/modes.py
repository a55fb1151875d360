"""
Operating modes of the Bus Pirate binary interface.

Only BITBANG and I2C are ever entered by this package. SPI, UART, ONEWIRE
and RAW are reserved so the numbering matches the probe's binmode menu.
"""

from enum import IntEnum


class Mode(IntEnum):
    """Binary interface modes"""
    CLOSED = 0    # No session established
    UNKNOWN = 1   # Probe state cannot be trusted, re-open required
    BITBANG = 2
    SPI = 3
    I2C = 4
    UART = 5
    ONEWIRE = 6
    RAW = 7


_MODE_NAMES = {
    Mode.CLOSED: "closed",
    Mode.UNKNOWN: "unknown",
    Mode.BITBANG: "bitbang",
    Mode.SPI: "SPI",
    Mode.I2C: "I2C",
    Mode.UART: "UART",
    Mode.ONEWIRE: "1Wire",
    Mode.RAW: "raw",
}


def mode_name(mode: int) -> str:
    """Human readable name for a mode, e.g. 'I2C mode'."""
    try:
        return f"{_MODE_NAMES[Mode(mode)]} mode"
    except ValueError:
        return f"mode {mode}"
