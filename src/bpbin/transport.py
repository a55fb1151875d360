"""
Byte transports for talking to the probe.

Transport is the contract the session needs: blocking writes, reads that
may return short, a settable read timeout, and read_exact() on top. A read
that returns nothing means the timeout expired; the distinction between
"timed out" and "broken" is made here, once, by raising TransportTimeout
or TransportError.

SerialTransport implements the contract with pyserial.
"""

from abc import ABC, abstractmethod
from typing import Optional

import serial

from .config import SerialConfig
from .errors import TransportError, TransportTimeout


class Transport(ABC):
    """Duplex byte channel with a configurable read timeout."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write data, returning the number of bytes written."""
        pass

    @abstractmethod
    def read(self, size: int) -> bytes:
        """
        Read up to size bytes.

        Returns fewer bytes than requested when the timeout expires, and
        b'' when nothing arrived at all.
        """
        pass

    @abstractmethod
    def set_read_params(self, min_bytes: int, timeout: float):
        """Set the minimum byte count and timeout (seconds) for reads."""
        pass

    @abstractmethod
    def close(self):
        """Release the channel."""
        pass

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly size bytes, blocking across short reads.

        Raises:
            TransportTimeout: if a read times out first. The bytes received
                so far are available as the exception's ``received``.
        """
        buf = bytearray()
        while len(buf) < size:
            chunk = self.read(size - len(buf))
            if not chunk:
                raise TransportTimeout(
                    f"timeout after {len(buf)} of {size} bytes",
                    received=bytes(buf),
                )
            buf.extend(chunk)
        return bytes(buf)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SerialTransport(Transport):
    """
    Transport over a pyserial port.

    The port is opened 8N1 without flow control, as the Bus Pirate expects.
    Pass an already opened serial.Serial as ``serial_port`` to wrap it
    instead of opening config.port.
    """

    def __init__(self, config: Optional[SerialConfig] = None, serial_port=None):
        self.config = config or SerialConfig()
        self._min_bytes = 0

        if serial_port is not None:
            self._serial = serial_port
            return

        if not self.config.port:
            raise TransportError("no serial port specified")

        try:
            self._serial = serial.Serial(
                self.config.port,
                self.config.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.config.timeout,
                write_timeout=self.config.write_timeout,
            )
        except serial.SerialException as e:
            raise TransportError(f"failed to open serial port {self.config.port}: {e}") from e

    @property
    def port(self) -> Optional[str]:
        return self._serial.port

    @property
    def timeout(self) -> Optional[float]:
        return self._serial.timeout

    def write(self, data: bytes) -> int:
        try:
            written = self._serial.write(bytes(data))
            self._serial.flush()
        except serial.SerialTimeoutException as e:
            raise TransportTimeout(f"write timeout: {e}") from e
        except serial.SerialException as e:
            raise TransportError(f"write to bus pirate: {e}") from e

        # pyserial returns None from some backends on a complete write
        if written is None:
            written = len(data)
        return written

    def read(self, size: int) -> bytes:
        try:
            return self._serial.read(size)
        except serial.SerialException as e:
            raise TransportError(f"read from bus pirate: {e}") from e

    def set_read_params(self, min_bytes: int, timeout: float):
        # pyserial has no VMIN equivalent; min_bytes is kept for the contract
        self._min_bytes = min_bytes
        try:
            self._serial.timeout = timeout
        except (ValueError, serial.SerialException) as e:
            raise TransportError(f"cannot set read timeout: {e}") from e

    def close(self):
        if self._serial and self._serial.is_open:
            self._serial.close()
