"""Tests for the non-strict bulk write-then-read extension."""

import pytest

from bpbin.errors import BoundsError, NoSuchDeviceError, TransportError
from bpbin.i2c import (
    I2CAddress,
    decode_wnr_header,
    encode_wnr_header,
)
from bpbin.session import BusPirate

from conftest import ScriptedTransport


def scripted_nonstrict(*replies):
    """Session in I2C mode with a NonStrictI2C handle."""
    transport = ScriptedTransport([b"BBIO1", b"I2C1", *replies])
    bp = BusPirate(transport)
    bp.open()
    return transport, bp.enter_nonstrict_i2c_mode()


class TestFrameHeader:
    """Test the write-then-read header codec."""

    def test_encode(self):
        """Test opcode and big endian lengths."""
        assert encode_wnr_header(300, 10) == bytes([0x08, 0x01, 0x2C, 0x00, 0x0A])

    def test_decode(self):
        """Test that the header decodes back to its lengths."""
        assert decode_wnr_header(encode_wnr_header(300, 10)) == (300, 10)

    def test_maximum_lengths(self):
        """Test the 4096 byte limits."""
        assert encode_wnr_header(4096, 4096) == b"\x08\x10\x00\x10\x00"
        with pytest.raises(BoundsError):
            encode_wnr_header(4097, 0)
        with pytest.raises(BoundsError):
            encode_wnr_header(0, 4097)

    @pytest.mark.parametrize("header", [b"\x10\x00\x01\x00\x01", b"\x08\x00\x01"])
    def test_decode_rejects_garbage(self, header):
        """Test wrong opcodes and lengths."""
        with pytest.raises(ValueError):
            decode_wnr_header(header)


class TestWriteThenRead:
    """Test a single bulk command."""

    def test_frame_layout(self):
        """Test header, payload, status and read data."""
        transport, handle = scripted_nonstrict(None, b"\x01abc")
        buf = bytearray(3)

        handle.write_then_read(b"\xa0\x10", buf)

        assert transport.writes[-2] == b"\x08\x00\x02\x00\x03"
        assert transport.writes[-1] == b"\xa0\x10"
        assert buf == b"abc"

    def test_write_only(self):
        """Test that nothing is read after the status when rlen is 0."""
        transport, handle = scripted_nonstrict(None, b"\x01")
        handle.write_then_read(b"\xa0\x00\x55")
        assert transport.writes[-2] == b"\x08\x00\x03\x00\x00"

    def test_nack_status(self):
        """Test that a non-OK status is NoSuchDevice and nothing is read."""
        transport, handle = scripted_nonstrict(None, b"\x00zz")
        buf = bytearray(2)

        with pytest.raises(NoSuchDeviceError):
            handle.write_then_read(b"\xa0", buf)

        assert buf == bytearray(2)
        assert transport.rx == bytearray(b"zz")

    @pytest.mark.parametrize("wlen,rlen", [(4097, 0), (0, 4097)])
    def test_too_long_sends_nothing(self, wlen, rlen):
        """Test that oversized transfers are rejected before any write."""
        transport, handle = scripted_nonstrict()
        sent = len(transport.writes)

        with pytest.raises(BoundsError):
            handle.write_then_read(bytes(wlen), bytearray(rlen))
        assert len(transport.writes) == sent

    @pytest.mark.parametrize("buf", [bytes(2), "ab", (0, 0)])
    def test_unwritable_buffer_sends_nothing(self, buf):
        """Test that the read buffer is checked before the frame goes out."""
        transport, handle = scripted_nonstrict(None, b"\x01ab")
        sent = len(transport.writes)

        with pytest.raises(TypeError):
            handle.write_then_read(b"\xa0", buf)
        assert len(transport.writes) == sent

    def test_header_write_failure_is_fatal(self):
        """Test that a failed header write is reported."""
        transport, handle = scripted_nonstrict(TransportError("write failed"))

        with pytest.raises(TransportError):
            handle.write_then_read(b"\xa0", bytearray(1))
        assert len(transport.writes) == 3


class TestNonStrictTransact:
    """Test register transactions split into two bulk commands."""

    def test_two_frames(self):
        """Test the write phase frame followed by the read phase frame."""
        transport, handle = scripted_nonstrict(None, b"\x01", None, b"\x01WXYZ")
        buf = bytearray(4)

        assert handle.transact_8x8(0x50, 0x10, b"\x01\x02", buf) == (2, 4)

        assert transport.writes[-4:] == [
            encode_wnr_header(4, 0),
            bytes([0xA0, 0x10, 0x01, 0x02]),
            encode_wnr_header(1, 4),
            bytes([0xA1]),
        ]
        assert buf == b"WXYZ"

    def test_read_phase_failure(self):
        """Test a NACK in the read phase."""
        transport, handle = scripted_nonstrict(None, b"\x01", None, b"\x00")

        with pytest.raises(NoSuchDeviceError) as exc_info:
            handle.transact_8x8(0x50, 0x10, b"\x01\x02", bytearray(4))

        assert exc_info.value.phase == "read"
        assert exc_info.value.transferred == (0, 0)

    def test_write_phase_failure(self):
        """Test a NACK in the write phase skips the read phase."""
        transport, handle = scripted_nonstrict(None, b"\x00")

        with pytest.raises(NoSuchDeviceError) as exc_info:
            handle.transact_8x8(0x50, 0x10, b"", bytearray(4))

        assert exc_info.value.phase == "write"
        assert exc_info.value.transferred == (0, 0)
        assert len(transport.writes) == 4

    def test_read_registers(self, bp, probe):
        """Test reading from the simulated EEPROM."""
        handle = bp.enter_nonstrict_i2c_mode()
        buf = bytearray(4)

        handle.transact_8x8(0x50, 0x04, b"", buf)

        assert buf == bytes([0x14, 0x15, 0x16, 0x17])
        assert probe.frames() == [(2, 0), (1, 4)]

    def test_write_and_read_back(self, bp, eeprom):
        """Test a register write followed by a read."""
        handle = bp.enter_nonstrict_i2c_mode()

        handle.transact_8x8(0x50, 0x40, b"\xca\xfe\xba\xbe", bytearray())
        assert eeprom.registers[0x40:0x44] == b"\xca\xfe\xba\xbe"

        buf = bytearray(4)
        handle.transact_8x8(0x50, 0x40, b"", buf)
        assert buf == b"\xca\xfe\xba\xbe"

    def test_missing_device(self, bp):
        """Test that an absent device fails the write phase."""
        handle = bp.enter_nonstrict_i2c_mode()

        with pytest.raises(NoSuchDeviceError) as exc_info:
            handle.transact_8x8(0x51, 0x00, b"", bytearray(1))
        assert exc_info.value.phase == "write"

    def test_longest_write(self, bp, probe, eeprom):
        """Test that 4094 data bytes fill a whole 4096 byte frame."""
        handle = bp.enter_nonstrict_i2c_mode()

        assert handle.transact_8x8(0x50, 0x00, bytes([0x5A]) * 4094, bytearray()) == (4094, 0)
        assert probe.frames() == [(4096, 0), (1, 0)]
        assert eeprom.registers == bytearray([0x5A]) * 256

    @pytest.mark.parametrize("wlen,rlen", [(4095, 0), (4096, 0), (0, 4097)])
    def test_too_long_sends_nothing(self, bp, probe, wlen, rlen):
        """Test the per-call limits."""
        handle = bp.enter_nonstrict_i2c_mode()
        sent = len(probe.writes)

        with pytest.raises(BoundsError) as exc_info:
            handle.transact_8x8(0x50, 0x00, bytes(wlen), bytearray(rlen))

        assert exc_info.value.op == "i2c.Transact8x8"
        assert exc_info.value.phase is None
        assert len(probe.writes) == sent

    def test_read_only_buffer(self, bp, probe):
        """Test that bytes cannot be used as the read buffer."""
        handle = bp.enter_nonstrict_i2c_mode()
        sent = len(probe.writes)

        with pytest.raises(TypeError, match="read-only"):
            handle.transact_8x8(0x50, 0x00, b"", bytes(4))
        assert len(probe.writes) == sent

    @pytest.mark.parametrize("addr", [I2CAddress(0x50, addr_len=10), 0x80])
    def test_seven_bit_only(self, bp, probe, addr):
        """Test that wider addresses are rejected."""
        handle = bp.enter_nonstrict_i2c_mode()
        sent = len(probe.writes)

        with pytest.raises(BoundsError):
            handle.transact_8x8(addr, 0x00, b"", bytearray(1))
        assert len(probe.writes) == sent
