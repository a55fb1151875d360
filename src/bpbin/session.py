"""
Bus Pirate binary-mode session.

BusPirate owns the transport and is the only place that tracks which mode
the probe is in. Every command-issuing operation checks that mode first and
fails with ModeError before touching the wire. Any failure while changing
modes drops the session to Mode.UNKNOWN, after which only open() is allowed.

Protocol reference:
- http://dangerousprototypes.com/docs/Bitbang

Commands (bit-bang mode):
- 0x00: Reset, probe answers "BBIO1"
- 0x02: Enter I2C mode, probe answers "I2C1"
- 0x0F: Exit binary mode, probe answers 0x01
"""

from contextlib import contextmanager
from typing import Callable, Optional

from .config import SessionPolicy
from .errors import (
    BusPirateError,
    HandshakeError,
    HandshakeExhaustedError,
    ModeError,
    ProtocolFramingError,
    TransitionError,
    TransportError,
    TransportTimeout,
    UnexpectedResponseError,
)
from .modes import Mode
from .transport import Transport


CMD_RESET_BITBANG = 0x00
CMD_EXIT_BINARY = 0x0F

RESP_OK = 0x01

BBIO_BANNER = b"BBIO"
SUPPORTED_VERSION = ord("1")


def check_banner(response: bytes, prefix: bytes, op: str = ""):
    """
    Validate a mode banner such as b"BBIO1" or b"I2C1".

    Raises:
        ProtocolFramingError: on a wrong prefix or a version other than '1'
    """
    expected = prefix + bytes([SUPPORTED_VERSION])
    if len(response) != len(expected) or not response.startswith(prefix):
        raise ProtocolFramingError(
            f"expected version string {prefix.decode()}x, got {response!r}",
            expected=expected, received=response, op=op,
        )

    version = response[len(prefix)]
    if version != SUPPORTED_VERSION:
        raise ProtocolFramingError(
            f"protocol mismatch: only {prefix.decode()} version '1' is supported, "
            f"bus pirate uses version {chr(version)!r}",
            expected=expected, received=response, op=op,
        )


class BusPirate:
    """
    A Bus Pirate in binary mode.

    The transport must already be configured for the probe (115200 8N1 for
    v3/v4 hardware). A new BusPirate starts in Mode.CLOSED; call open() to
    put the probe into bit-bang mode before doing anything else.

    Example:
        >>> transport = SerialTransport(SerialConfig(port="/dev/ttyUSB0"))
        >>> with BusPirate(transport) as bp:
        ...     i2c = bp.enter_nonstrict_i2c_mode()
        ...     buf = bytearray(2)
        ...     i2c.transact_8x8(0x50, 0x00, b"", buf)
    """

    def __init__(self, transport: Transport, policy: Optional[SessionPolicy] = None,
                 debug: bool = False, log_callback: Optional[Callable[[str], None]] = None):
        self._transport = transport
        self.policy = policy or SessionPolicy()
        self._debug = debug
        self._log_callback = log_callback
        self._mode = Mode.CLOSED
        self._mode_version = 0

    # ----------------------------------------------------------------------
    # Mode bookkeeping
    # ----------------------------------------------------------------------

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def mode_version(self) -> int:
        return self._mode_version

    def get_mode(self) -> tuple[Mode, int]:
        """Return the active mode and the mode's protocol version."""
        return self._mode, self._mode_version

    def expect_mode(self, mode: Mode, op: str = ""):
        """Raise ModeError unless the session is currently in ``mode``."""
        if self._mode != mode:
            raise ModeError.for_modes(mode, self._mode, op=op)

    def _set_mode(self, mode: Mode, version: int):
        self._mode = mode
        self._mode_version = version
        self.log(f"mode is now {mode.name} (version {version})")

    def _clear_mode(self):
        self._mode = Mode.UNKNOWN
        self._mode_version = 0
        self.log("mode is now UNKNOWN")

    def log(self, msg: str):
        """Diagnostic output, silent unless debug or a callback is set."""
        line = f"[BusPirate] {msg}"
        if self._log_callback:
            self._log_callback(line)
        elif self._debug:
            print(line)

    # ----------------------------------------------------------------------
    # Command exchange primitives
    # ----------------------------------------------------------------------

    @contextmanager
    def _io(self, op: str):
        try:
            yield
        except TransportError as e:
            if op and not e.op:
                e.op = op
            raise

    def write(self, data: bytes, op: str = ""):
        """Write all of data or raise TransportError."""
        with self._io(op):
            written = self._transport.write(data)
            if written != len(data):
                raise TransportError(f"short write: {written} of {len(data)} bytes", op=op)

    def read_exact(self, size: int, op: str = "") -> bytes:
        with self._io(op):
            return self._transport.read_exact(size)

    def write_byte(self, b: int, op: str = ""):
        self.write(bytes([b]), op)

    def read_byte(self, op: str = "") -> int:
        return self.read_exact(1, op)[0]

    def exchange_byte(self, b: int, op: str = "") -> int:
        """Send one byte and return the single byte the probe answers."""
        self.write_byte(b, op)
        return self.read_byte(op)

    def exchange_byte_and_expect(self, b: int, expected: int, op: str = ""):
        """
        Send one byte and require a specific single-byte answer.

        Raises:
            UnexpectedResponseError: carrying the byte received and the one
                expected
        """
        response = self.exchange_byte(b, op)
        if response != expected:
            raise UnexpectedResponseError(response, expected, op=op)

    # ----------------------------------------------------------------------
    # Session lifecycle
    # ----------------------------------------------------------------------

    def _set_read_timeout(self, timeout: float):
        with self._io("open"):
            self._transport.set_read_params(0, timeout)

    def open(self):
        """
        Put the probe into binary bit-bang mode.

        The probe may be in any state when the port is opened, typically its
        text menu. 0x00 is sent repeatedly until the probe answers "BBIO1";
        each attempt waits policy.probe_timeout. Stray output left over from
        the previous state is then drained by waiting for a read of
        policy.drain_size bytes to time out.

        Raises:
            HandshakeExhaustedError: if no attempt got an answer. The mode
                is left as it was.
            ProtocolFramingError: if the answer was not "BBIO1". Not retried.
            HandshakeError: if the probe kept sending during the drain.
            TransportError: on any other I/O failure.
        """
        op = "open"
        policy = self.policy
        self._set_read_timeout(policy.probe_timeout)

        for attempt in range(policy.max_attempts):
            self.log(f"try {attempt:2d}: sending 0x00...")
            try:
                self.write_byte(CMD_RESET_BITBANG, op)
                response = self.read_exact(len(BBIO_BANNER) + 1, op)
            except TransportTimeout:
                self.log("\ttimeout!")
                continue
            except TransportError:
                self._clear_mode()
                raise

            self.log(f"buf {response!r}")
            try:
                check_banner(response, BBIO_BANNER, op)
                self._drain(op)
            except BusPirateError:
                self._clear_mode()
                raise

            self._set_mode(Mode.BITBANG, 1)
            return

        raise HandshakeExhaustedError(policy.max_attempts, op=op)

    def _drain(self, op: str):
        self._set_read_timeout(self.policy.drain_timeout)
        try:
            stray = self.read_exact(self.policy.drain_size, op)
        except TransportTimeout as e:
            self.log(f"drained buffer, {len(e.received)} excess bytes discarded")
            return

        raise HandshakeError(
            f"probe still sending after {len(stray)} bytes, could not drain buffer",
            op=op,
        )

    def _switch_mode(self, command: int, banner: bytes, mode: Mode, op: str):
        """Send a mode command and commit ``mode`` if the banner checks out."""
        try:
            self.write_byte(command, op)
            response = self.read_exact(len(banner) + 1, op)
            check_banner(response, banner, op)
        except BusPirateError:
            self._clear_mode()
            raise

        self._set_mode(mode, 1)

    def enter_bitbang_mode(self):
        """
        Return the probe to bit-bang mode from a known mode.

        Unlike open() there is no retry loop. On any failure the session
        becomes Mode.UNKNOWN and the error is re-raised.
        """
        op = "EnterBitbangMode"
        if self._mode == Mode.UNKNOWN:
            raise ModeError(
                "cannot enter bitbang mode from unknown mode",
                expected=Mode.BITBANG, actual=self._mode, op=op,
            )

        self._switch_mode(CMD_RESET_BITBANG, BBIO_BANNER, Mode.BITBANG, op)

    def close(self):
        """
        Leave binary mode.

        If the probe is not in bit-bang mode it is returned there first.
        Without a close the probe may stay unresponsive to its text menu.
        The transport itself stays open; see release().
        """
        op = "close"
        if self._mode == Mode.UNKNOWN:
            raise ModeError(
                "cannot leave unknown mode",
                expected=Mode.BITBANG, actual=self._mode, op=op,
            )

        if self._mode != Mode.BITBANG:
            self.log("need to go to bitbang mode before closing")
            try:
                self.enter_bitbang_mode()
            except BusPirateError as e:
                raise TransitionError(
                    f"could not enter bitbang mode to close connection: {e}", op=op
                ) from e

        self.exchange_byte_and_expect(CMD_EXIT_BINARY, RESP_OK, op)
        self.log("bp closed")

    def release(self):
        """Close the transport. The session goes back to Mode.CLOSED."""
        try:
            self._transport.close()
        finally:
            self._mode = Mode.CLOSED
            self._mode_version = 0

    # ----------------------------------------------------------------------
    # Mode handles
    # ----------------------------------------------------------------------

    def enter_i2c_mode(self):
        """
        Switch from bit-bang mode to I2C mode.

        Returns:
            BusPirateI2C bound to this session. It becomes invalid as soon
            as the session leaves I2C mode.
        """
        from .i2c import BusPirateI2C, CMD_ENTER_I2C, I2C_BANNER

        op = "EnterI2CMode"
        if self._mode != Mode.BITBANG:
            raise ModeError(
                "I2C mode can only be entered from raw bitbang mode",
                expected=Mode.BITBANG, actual=self._mode, op=op,
            )

        self._switch_mode(CMD_ENTER_I2C, I2C_BANNER, Mode.I2C, op)
        return BusPirateI2C(self)

    def enter_nonstrict_i2c_mode(self):
        """
        Like enter_i2c_mode(), returning a NonStrictI2C with bulk transfers.
        """
        from .i2c import NonStrictI2C
        self.enter_i2c_mode()
        return NonStrictI2C(self)

    def __enter__(self):
        try:
            self.open()
        except BusPirateError:
            self.release()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if self._mode not in (Mode.UNKNOWN, Mode.CLOSED):
                self.close()
        finally:
            self.release()
