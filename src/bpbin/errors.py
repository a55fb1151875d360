"""
Exceptions raised by the Bus Pirate driver.

Every error derives from BusPirateError so callers can catch the whole
family at once, while each failure kind keeps its own class:

- ModeError: operation issued in the wrong mode (no bytes were sent)
- ProtocolFramingError: bad "BBIOx" / "I2Cx" banner during a mode change
- UnexpectedResponseError: a command got a status byte other than expected
- TransportError / TransportTimeout: I/O failure on the serial link
- HandshakeError / HandshakeExhaustedError: open() could not sync
- TransitionError: close() could not return to bit-bang mode first
- BoundsError: transfer size or address width not supported
- NackError / NoSuchDeviceError: the I2C target did not acknowledge
"""

from typing import Optional

from .modes import Mode, mode_name


class BusPirateError(Exception):
    """Base class for all driver errors."""

    def __init__(self, message: str, op: str = ""):
        super().__init__(message)
        self.message = message
        self.op = op
        # Set by transact_8x8 when a failure aborts one of its phases
        self.phase: Optional[str] = None
        self.transferred: Optional[tuple[int, int]] = None
        # Data byte already received when a later step of a read failed
        self.data: Optional[int] = None

    def __str__(self) -> str:
        if self.op:
            return f"{self.op}: {self.message}"
        return self.message


class ModeError(BusPirateError):
    """Operation attempted while the session is in the wrong mode."""

    def __init__(self, message: str, expected: Optional[Mode] = None,
                 actual: Optional[Mode] = None, op: str = ""):
        super().__init__(message, op)
        self.expected = expected
        self.actual = actual

    @classmethod
    def for_modes(cls, expected: Mode, actual: Mode, op: str = "") -> "ModeError":
        """Build the error for a required/actual mode pair."""
        if actual == Mode.CLOSED:
            message = "connection not open"
        elif actual == Mode.UNKNOWN:
            message = "mode not known (did you forget to check for a communication error?)"
        else:
            message = f"need to be in {mode_name(expected)}, currently in {mode_name(actual)}"
        return cls(message, expected=expected, actual=actual, op=op)


class ProtocolFramingError(BusPirateError):
    """Mode banner had the wrong prefix or an unsupported version."""

    def __init__(self, message: str, expected: bytes = b"",
                 received: bytes = b"", op: str = ""):
        super().__init__(message, op)
        self.expected = expected
        self.received = received


class UnexpectedResponseError(BusPirateError):
    """A single byte exchange returned something other than expected."""

    def __init__(self, got: int, want: int, op: str = ""):
        super().__init__(
            f"unexpected response from bus pirate, got 0x{got:02x}, want 0x{want:02x}",
            op,
        )
        self.got = got
        self.want = want


class TransportError(BusPirateError):
    """I/O failure on the underlying byte channel."""


class TransportTimeout(TransportError):
    """A read or write did not complete before the configured timeout."""

    def __init__(self, message: str, received: bytes = b"", op: str = ""):
        super().__init__(message, op)
        self.received = received


class HandshakeError(BusPirateError):
    """open() failed to put the probe into binary mode."""


class HandshakeExhaustedError(HandshakeError):
    """No BBIO banner arrived within the allowed number of attempts."""

    def __init__(self, attempts: int, op: str = "open"):
        super().__init__(
            f"no suitable response after {attempts} attempts", op
        )
        self.attempts = attempts


class TransitionError(BusPirateError):
    """A mode change required by another operation failed."""


class BoundsError(BusPirateError):
    """Transfer length or address width outside what the probe supports."""


class NackError(BusPirateError):
    """The addressed I2C device did not acknowledge."""

    def __init__(self, message: str = "NACK received", op: str = ""):
        super().__init__(message, op)


class NoSuchDeviceError(NackError):
    """A NACK occurred somewhere during a bulk write."""

    def __init__(self, message: str = "no such device (NACK during write)", op: str = ""):
        super().__init__(message, op)
