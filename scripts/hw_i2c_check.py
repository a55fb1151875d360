#!/usr/bin/env python3
"""
Check binary mode and I2C against a real Bus Pirate v3/v4.

Walks the probe through open, I2C mode, a bus scan and a register read
in both strict and bulk mode, then closes it again. Connect an I2C
EEPROM (24Cxx at 0x50) with pull-ups and power enabled for the read to
have something to talk to.

Usage:
    python scripts/hw_i2c_check.py [PORT] [ADDRESS]

Requirements:
    - Bus Pirate v3/v4 connected
    - bpbin installed (pip install -e .)
"""

import sys

import serial.tools.list_ports

from bpbin import (
    BusPirate,
    BusPirateI2C,
    BusPirateError,
    NackError,
    SerialConfig,
    SerialTransport,
    find_port,
)


def scan(i2c) -> list[int]:
    """Addresses 0x08-0x77 that ACK a write"""
    found = []
    for addr in range(0x08, 0x78):
        i2c.start()
        try:
            i2c.write_byte(addr << 1)
            found.append(addr)
        except NackError:
            pass
        i2c.stop()
    return found


def check_i2c(port: str, address: int) -> bool:
    """Main check"""
    print(f"\n[1] Opening {port}")
    transport = SerialTransport(SerialConfig(port=port))

    with BusPirate(transport, debug=True) as bp:
        mode, version = bp.get_mode()
        print(f"[+] Binary mode: {mode.name} v{version}")

        print("\n[2] Entering I2C mode...")
        i2c = bp.enter_nonstrict_i2c_mode()
        print("[+] I2C mode")

        print("\n[3] Scanning bus...")
        found = scan(i2c)
        if found:
            print(f"[+] Found: {', '.join(f'0x{a:02x}' for a in found)}")
        else:
            print("[*] No devices answered (pull-ups and power on?)")

        if address not in found:
            print(f"[!] Nothing at 0x{address:02x}, skipping register reads")
            return bool(found)

        print(f"\n[4] Strict read of 16 bytes from 0x{address:02x} register 0x00...")
        strict = bytearray(16)
        BusPirateI2C.transact_8x8(i2c, address, 0x00, b"", strict)
        print(f"    {strict.hex(' ')}")

        print(f"\n[5] Bulk read of 16 bytes from 0x{address:02x} register 0x00...")
        bulk = bytearray(16)
        i2c.transact_8x8(address, 0x00, b"", bulk)
        print(f"    {bulk.hex(' ')}")

        if strict != bulk:
            print("[!] Strict and bulk reads differ")
            return False

    print("\n[+] Bus Pirate returned to terminal mode")
    return True


if __name__ == '__main__':
    print("=" * 60)
    print("Bus Pirate Binary I2C Check")
    print("=" * 60)

    port = sys.argv[1] if len(sys.argv) > 1 else find_port()
    address = int(sys.argv[2], 0) if len(sys.argv) > 2 else 0x50

    if not port:
        print("[!] No Bus Pirate found")
        print("\nAvailable ports:")
        for p in serial.tools.list_ports.comports():
            print(f"    {p.device} - {p.description}")
        sys.exit(1)

    try:
        success = check_i2c(port, address)
    except KeyboardInterrupt:
        print("\n[*] Interrupted")
        sys.exit(1)
    except BusPirateError as e:
        print(f"\n[!] Error: {e}")
        success = False

    print("\n" + "=" * 60)
    print("[+] I2C check PASSED" if success else "[!] I2C check FAILED")
    print("=" * 60)
    sys.exit(0 if success else 1)
