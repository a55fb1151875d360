"""
Configuration for the serial link and the binary-mode handshake.

SessionPolicy holds the retry count and the two timeout operating points
used by BusPirate.open(): a short timeout while probing for the "BBIO1"
banner and a longer one to detect that the probe has gone quiet.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class SerialConfig:
    """Serial port configuration"""
    port: Optional[str] = None
    baudrate: int = 115200     # Bus Pirate v3/v4 default
    timeout: float = 0.3       # Read timeout in seconds
    write_timeout: float = 1.0

    @classmethod
    def from_env(cls, **overrides) -> "SerialConfig":
        """
        Build a config from BPBIN_PORT / BPBIN_BAUDRATE.

        Keyword arguments that are not None take precedence over the
        environment.

        Raises:
            ValueError: if BPBIN_BAUDRATE is used and is not an integer
        """
        config = cls()
        port = os.environ.get("BPBIN_PORT")
        if port:
            config.port = port
        baudrate = os.environ.get("BPBIN_BAUDRATE")
        if baudrate and overrides.get("baudrate") is None:
            try:
                config.baudrate = int(baudrate)
            except ValueError:
                raise ValueError(f"BPBIN_BAUDRATE must be an integer, got {baudrate!r}") from None

        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config


@dataclass
class SessionPolicy:
    """Handshake retry and timeout policy"""
    max_attempts: int = 20        # 0x00 probes sent before giving up
    probe_timeout: float = 0.1    # Wait per "BBIO1" probe (seconds)
    drain_timeout: float = 0.3    # Quiet period proving the buffer is empty
    drain_size: int = 2048        # Upper bound on stray bytes discarded

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.probe_timeout < 0 or self.drain_timeout < 0:
            raise ValueError("timeouts must not be negative")
        if self.drain_size < 1:
            raise ValueError("drain_size must be at least 1")
