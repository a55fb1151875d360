"""Shared fixtures: fake transports standing in for a Bus Pirate."""

import pytest

from bpbin.config import SessionPolicy
from bpbin.i2c import decode_wnr_header
from bpbin.session import BusPirate
from bpbin.transport import Transport


class ScriptedTransport(Transport):
    """
    Answers each write() with the next scripted reply.

    A reply of None stays silent (the next read times out), an exception
    instance is raised from write(). With flood=True reads never run dry.
    """

    def __init__(self, replies=(), flood=False):
        self.replies = list(replies)
        self.flood = flood
        self.writes = []
        self.rx = bytearray()
        self.read_params = []
        self.closed = False

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)

    def write(self, data):
        self.writes.append(bytes(data))
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            if reply:
                self.rx.extend(reply)
        return len(data)

    def read(self, size):
        if self.flood and not self.rx:
            return b"\xff" * size
        chunk = bytes(self.rx[:size])
        del self.rx[:size]
        return chunk

    def set_read_params(self, min_bytes, timeout):
        self.read_params.append((min_bytes, timeout))

    def close(self):
        self.closed = True


class SimulatedDevice:
    """I2C target with 256 byte registers and an auto-incrementing pointer."""

    def __init__(self, contents=b""):
        self.registers = bytearray(256)
        self.registers[:len(contents)] = contents
        self.pointer = 0

    def write(self, b):
        self.registers[self.pointer] = b
        self.pointer = (self.pointer + 1) % 256

    def read(self):
        b = self.registers[self.pointer]
        self.pointer = (self.pointer + 1) % 256
        return b


class SimulatedProbe(Transport):
    """
    Bus Pirate speaking the binary protocol, with I2C devices on its bus.

    Starts in terminal mode; answers "BBIO1" after ``sync_after`` ignored
    0x00 bytes, followed once by ``stray`` left-over terminal output.
    """

    def __init__(self, devices=None, sync_after=0, stray=b""):
        self.devices = devices if devices is not None else {}
        self.sync_after = sync_after
        self.stray = stray
        self.mode = "text"
        self.writes = []
        self.rx = bytearray()
        self.closed = False

        self._zeros = 0
        self._bulk_remaining = 0
        self._wnr = None
        self._expect_addr = False
        self._target = None
        self._reg_set = False

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)

    def write(self, data):
        self.writes.append(bytes(data))
        for b in data:
            self._feed(b)
        return len(data)

    def read(self, size):
        chunk = bytes(self.rx[:size])
        del self.rx[:size]
        return chunk

    def set_read_params(self, min_bytes, timeout):
        pass

    def close(self):
        self.closed = True

    # Protocol

    def _feed(self, b):
        if self.mode == "text":
            if b == 0x00:
                self._zeros += 1
                if self._zeros > self.sync_after:
                    self.rx.extend(b"BBIO1" + self.stray)
                    self.stray = b""
                    self.mode = "bbio"
        elif self.mode == "bbio":
            if b == 0x00:
                self.rx.extend(b"BBIO1")
            elif b == 0x02:
                self.rx.extend(b"I2C1")
                self.mode = "i2c"
            elif b == 0x0F:
                self.rx.append(0x01)
                self.mode = "text"
                self._zeros = 0
        else:
            self._feed_i2c(b)

    def _feed_i2c(self, b):
        if self._wnr is not None:
            self._wnr.append(b)
            if len(self._wnr) >= 5:
                wlen, rlen = decode_wnr_header(bytes(self._wnr[:5]))
                if len(self._wnr) == 5 + wlen:
                    self._write_then_read(bytes(self._wnr[5:]), rlen)
                    self._wnr = None
            return

        if self._bulk_remaining:
            self._bulk_remaining -= 1
            self.rx.append(0x00 if self._bus_write(b) else 0x01)
            return

        if b == 0x00:
            self.rx.extend(b"BBIO1")
            self.mode = "bbio"
        elif b == 0x02:
            self._expect_addr = True
            self.rx.append(0x01)
        elif b == 0x03:
            self._target = None
            self.rx.append(0x01)
        elif b == 0x04:
            self.rx.append(self._target.read() if self._target else 0xFF)
        elif b in (0x06, 0x07):
            self.rx.append(0x01)
        elif b == 0x08:
            self._wnr = bytearray([b])
        elif b & 0xF0 == 0x10:
            self._bulk_remaining = (b & 0x0F) + 1
            self.rx.append(0x01)

    def _bus_write(self, b):
        if self._expect_addr:
            self._expect_addr = False
            self._target = self.devices.get(b >> 1)
            self._reg_set = bool(b & 1)
            return self._target is not None
        if self._target is None:
            return False
        if not self._reg_set:
            self._target.pointer = b
            self._reg_set = True
        else:
            self._target.write(b)
        return True

    def _write_then_read(self, w, rlen):
        self._expect_addr = True
        if not all(self._bus_write(b) for b in w):
            self.rx.append(0x00)
        else:
            self.rx.append(0x01)
            self.rx.extend(self._target.read() for _ in range(rlen))
        self._target = None

    def frames(self):
        """Write-then-read headers sent so far, as (wlen, rlen) pairs."""
        return [decode_wnr_header(w) for w in self.writes if len(w) == 5 and w[0] == 0x08]


@pytest.fixture
def policy():
    """Default handshake policy."""
    return SessionPolicy()


@pytest.fixture
def eeprom():
    """A 24Cxx-style device with recognisable contents."""
    return SimulatedDevice(bytes(range(0x10, 0x30)))


@pytest.fixture
def probe(eeprom):
    """Simulated probe with one device at 0x50."""
    return SimulatedProbe(devices={0x50: eeprom})


@pytest.fixture
def bp(probe, policy):
    """An opened session in bit-bang mode."""
    session = BusPirate(probe, policy=policy)
    session.open()
    return session
