"""
Bus Pirate binary I2C mode.

BusPirateI2C offers the strict primitives (start, stop, read/write a single
byte) from which any I2C transaction can be assembled one round trip at a
time. NonStrictI2C adds the probe's bulk "write then read" command, which is
much faster but splits a register read into *two* bus transactions. Only use
it when no other master shares the bus and the target does not care that
the write and the read are separated by a stop.

Protocol reference:
- http://dangerousprototypes.com/docs/I2C_(binary)

Commands (I2C mode):
- 0x02: Start bit
- 0x03: Stop bit
- 0x04: Read byte
- 0x06 / 0x07: ACK / NACK the byte just read
- 0x08: Write then read, followed by wlen(2) rlen(2) and the write bytes
- 0x1x: Bulk write of x+1 bytes
"""

import struct
from dataclasses import dataclass
from typing import Optional, Union

from .errors import BoundsError, BusPirateError, NackError, NoSuchDeviceError
from .modes import Mode
from .session import BusPirate, RESP_OK, check_banner


CMD_ENTER_I2C = 0x02

CMD_I2C_START = 0x02  # Same value as CMD_ENTER_I2C, only sent in I2C mode
CMD_I2C_STOP = 0x03
CMD_I2C_READ = 0x04
CMD_I2C_ACK = 0x06
CMD_I2C_NACK = 0x07
CMD_I2C_WRITE_THEN_READ = 0x08
CMD_I2C_BULK_WRITE = 0x10  # Low nibble is byte count - 1

I2C_BANNER = b"I2C"

WNR_MAX_WRITE = 4096
WNR_MAX_READ = 4096

# opcode, write length, read length (big endian)
WNR_HEADER = struct.Struct(">BHH")


@dataclass(frozen=True)
class I2CAddress:
    """An I2C target address and its width in bits (7 or 10)."""
    base_addr: int
    addr_len: int = 7

    def __post_init__(self):
        if self.addr_len not in (7, 10):
            raise ValueError(f"unsupported address length {self.addr_len}")
        if not 0 <= self.base_addr < (1 << self.addr_len):
            raise ValueError(f"address 0x{self.base_addr:x} does not fit in {self.addr_len} bits")

    def __str__(self) -> str:
        if self.addr_len == 10:
            return f"0x{self.base_addr:03x} (10 bit)"
        return f"0x{self.base_addr:02x}"


Address = Union[int, I2CAddress]


def check_writable(r, op: str = ""):
    """Raise TypeError unless r can receive read data in place."""
    try:
        readonly = memoryview(r).readonly
    except TypeError:
        raise TypeError(f"{op}: read buffer must be a bytearray, got {type(r).__name__}") from None
    if readonly:
        raise TypeError(f"{op}: read buffer is read-only ({type(r).__name__}), use a bytearray")


def seven_bit_address(addr: Address, op: str = "") -> int:
    """Return the base address of a 7 bit address, else raise BoundsError."""
    if isinstance(addr, I2CAddress):
        if addr.addr_len != 7:
            raise BoundsError("bus pirate I2C only supports 7 bit addressing", op=op)
        return addr.base_addr
    if not 0 <= addr <= 0x7F:
        raise BoundsError(f"address 0x{addr:x} is not a 7 bit address", op=op)
    return addr


def encode_wnr_header(wlen: int, rlen: int) -> bytes:
    """
    Build the 5 byte header of a write-then-read command.

    >>> encode_wnr_header(300, 10).hex(' ')
    '08 01 2c 00 0a'
    """
    op = "i2c.WriteThenRead"
    if not 0 <= wlen <= WNR_MAX_WRITE:
        raise BoundsError(f"cannot write more than {WNR_MAX_WRITE} bytes (requested {wlen})", op=op)
    if not 0 <= rlen <= WNR_MAX_READ:
        raise BoundsError(f"cannot read more than {WNR_MAX_READ} bytes (requested {rlen})", op=op)
    return WNR_HEADER.pack(CMD_I2C_WRITE_THEN_READ, wlen, rlen)


def decode_wnr_header(header: bytes) -> tuple[int, int]:
    """Parse a write-then-read header back into (wlen, rlen)."""
    if len(header) != WNR_HEADER.size:
        raise ValueError(f"header must be {WNR_HEADER.size} bytes, got {len(header)}")
    opcode, wlen, rlen = WNR_HEADER.unpack(header)
    if opcode != CMD_I2C_WRITE_THEN_READ:
        raise ValueError(f"not a write-then-read header (opcode 0x{opcode:02x})")
    return wlen, rlen


class BusPirateI2C:
    """
    A Bus Pirate in I2C mode, using strict single-byte primitives.

    Obtain one with BusPirate.enter_i2c_mode(). The handle keeps no mode of
    its own: every call checks the session, so once the session switches to
    another mode all operations fail with ModeError.
    """

    def __init__(self, bp: BusPirate):
        self._bp = bp

    @property
    def bus_pirate(self) -> BusPirate:
        return self._bp

    @property
    def valid(self) -> bool:
        """True while the session is still in I2C mode."""
        return self._bp.mode == Mode.I2C

    def _check_mode(self, op: str):
        self._bp.expect_mode(Mode.I2C, op)

    def start(self):
        """Send a (repeated) start condition."""
        op = "i2c.Start"
        self._check_mode(op)
        self._bp.exchange_byte_and_expect(CMD_I2C_START, RESP_OK, op)

    def stop(self):
        """Send a stop condition."""
        op = "i2c.Stop"
        self._check_mode(op)
        self._bp.exchange_byte_and_expect(CMD_I2C_STOP, RESP_OK, op)

    def read_byte(self, ack: bool) -> int:
        """
        Read one byte from the bus, then ACK or NACK it.

        Args:
            ack: True to ACK the byte (more bytes follow), False to NACK it

        Returns:
            The data byte.

        If the ACK/NACK step fails, the raised error still carries the byte
        in its ``data`` attribute; treat it as suspect.
        """
        op = "i2c.ReadByte"
        self._check_mode(op)

        data = self._bp.exchange_byte(CMD_I2C_READ, op)
        try:
            self._bp.exchange_byte_and_expect(CMD_I2C_ACK if ack else CMD_I2C_NACK, RESP_OK, op)
        except BusPirateError as e:
            e.data = data
            raise
        return data

    def write_byte(self, b: int):
        """
        Write one byte to the bus.

        Raises:
            NackError: if the target did not acknowledge the byte
        """
        op = "i2c.WriteByte"
        self._check_mode(op)
        if not 0 <= b <= 0xFF:
            raise BoundsError(f"0x{b:x} is not a byte", op=op)

        # bulk write command | (count - 1)
        self._bp.exchange_byte_and_expect(CMD_I2C_BULK_WRITE | 0x00, RESP_OK, op)

        ack = self._bp.exchange_byte(b, op)
        if ack != 0:
            raise NackError(f"NACK received writing 0x{b:02x}", op=op)

    def write_bytes(self, data: bytes):
        """Write several bytes, one round trip each."""
        for b in data:
            self.write_byte(b)

    def _address(self, base: int, read: bool, op: str):
        try:
            self.write_byte((base << 1) | (1 if read else 0))
        except NackError as e:
            raise NoSuchDeviceError(f"no device at address 0x{base:02x}", op=op) from e

    def transact_8x8(self, addr: Address, regaddr: int, w: bytes, r: bytearray) -> tuple[int, int]:
        """
        Write w to register regaddr, then read len(r) bytes back into r.

        The read uses a repeated start, so this is a single bus transaction.
        Each byte costs at least one round trip to the probe; see
        NonStrictI2C for a faster variant.

        Returns:
            (bytes written, bytes read), not counting address bytes
        """
        op = "i2c.Transact8x8"
        self._check_mode(op)
        base = seven_bit_address(addr, op)
        check_writable(r, op)
        if not 0 <= regaddr <= 0xFF:
            raise BoundsError(f"register address 0x{regaddr:x} is not a byte", op=op)

        self.start()
        try:
            self._address(base, read=False, op=op)
            self.write_byte(regaddr)
            self.write_bytes(w)

            if len(r):
                self.start()
                self._address(base, read=True, op=op)
                for i in range(len(r)):
                    r[i] = self.read_byte(ack=i < len(r) - 1)
        except NackError:
            self.stop()
            raise

        self.stop()
        return len(w), len(r)


class NonStrictI2C(BusPirateI2C):
    """
    I2C handle with fast, non-atomic bulk transfers.

    Adds write_then_read() and a transact_8x8() that issues the register
    write and the data read as two separate bus transactions. Expect
    substantial speed gains, but make sure no other master can slip a
    transaction in between and that the target keeps its register pointer
    across a stop.

    Obtain one with BusPirate.enter_nonstrict_i2c_mode().
    """

    def write_then_read(self, w: bytes, r: Optional[bytearray] = None):
        """
        Run one probe write-then-read command.

        Writes w (including the address byte) and then reads len(r) bytes
        into r. At most 4096 bytes each way.

        Raises:
            BoundsError: if w or r is too long; nothing is sent
            TypeError: if r is read-only; nothing is sent
            NoSuchDeviceError: if any written byte was NACKed. Which byte
                failed cannot be told from the probe's answer.
        """
        op = "i2c.WriteThenRead"
        self._check_mode(op)
        if r is None:
            r = bytearray()
        check_writable(r, op)

        header = encode_wnr_header(len(w), len(r))
        self._bp.log(f"header {header.hex(' ')}  write b {bytes(w).hex(' ')}")

        self._bp.write(header, op)
        if len(w):
            self._bp.write(bytes(w), op)

        # The probe answers 0x01 if every written byte was ACKed. It is
        # documented to answer 0x00 for out of range lengths as well, which
        # the bounds check above already rules out for known firmware.
        status = self._bp.read_byte(op)
        if status != RESP_OK:
            raise NoSuchDeviceError(op=op)

        if len(r):
            r[0:len(r)] = self._bp.read_exact(len(r), op)
            self._bp.log(f"read b {bytes(r).hex(' ')}")

    def transact_8x8(self, addr: Address, regaddr: int, w: bytes, r: bytearray) -> tuple[int, int]:
        """
        Write w to register regaddr, then read len(r) bytes back into r.

        Only 7 bit addresses are supported. On failure the raised error has
        ``phase`` set to "write" or "read" and ``transferred`` to (0, 0):
        the probe does not say how many bytes went through.

        Returns:
            (len(w), len(r))
        """
        op = "i2c.Transact8x8"
        self._check_mode(op)
        base = seven_bit_address(addr, op)
        check_writable(r, op)

        # the address byte and the register byte share the frame with w
        max_write = WNR_MAX_WRITE - 2
        if len(w) > max_write:
            raise BoundsError(
                f"write of {len(w)} bytes requested, maximum of {max_write} supported", op=op
            )
        if len(r) > WNR_MAX_READ:
            raise BoundsError(
                f"read of {len(r)} bytes requested, maximum of {WNR_MAX_READ} supported", op=op
            )
        if not 0 <= regaddr <= 0xFF:
            raise BoundsError(f"register address 0x{regaddr:x} is not a byte", op=op)

        self._bp.log(
            f"nonstrict Transact8x8 addr {addr} regaddr 0x{regaddr:02x} "
            f"len(w) {len(w)} len(r) {len(r)}"
        )

        wbuf = bytes([base << 1, regaddr]) + bytes(w)
        try:
            self.write_then_read(wbuf)
        except BusPirateError as e:
            e.phase = "write"
            e.transferred = (0, 0)
            raise

        try:
            self.write_then_read(bytes([(base << 1) | 1]), r)
        except BusPirateError as e:
            e.phase = "read"
            e.transferred = (0, 0)
            raise

        return len(w), len(r)
