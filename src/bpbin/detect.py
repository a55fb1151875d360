"""
Bus Pirate discovery on the USB serial ports.

v3 boards sit behind an FTDI FT232RL (0403:6001), v4 boards enumerate as
a USB CDC device (04D8:FB00). The FTDI id is shared with countless other
adapters. An FTDI port counts as a Bus Pirate when its USB product string
is missing or names a Bus Pirate or an FT232R (stock "FT232R USB UART"):
v3 boards ship with an unprogrammed FT232RL, so a generic FT232R cable
looks the same and is reported too. Any other product string is "unknown".
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

import serial.tools.list_ports


@dataclass
class DeviceInfo:
    """A serial port that may have a Bus Pirate behind it."""
    name: str
    device_type: str            # "buspirate" or "unknown"
    port: Optional[str] = None  # e.g. /dev/ttyUSB0, COM3
    vid: Optional[int] = None
    pid: Optional[int] = None
    serial: Optional[str] = None
    capabilities: list[str] = field(default_factory=list)

    @property
    def usb_id(self) -> str:
        if self.vid is None or self.pid is None:
            return "N/A"
        return f"{self.vid:04x}:{self.pid:04x}"


# (VID, PID) -> (name, device_type, capabilities)
KNOWN_USB_DEVICES = {
    (0x0403, 0x6001): ("Bus Pirate v3/v4", "buspirate", ["bitbang", "i2c"]),
    (0x04D8, 0xFB00): ("Bus Pirate v4", "buspirate", ["bitbang", "i2c"]),
}

FTDI_USB_ID = (0x0403, 0x6001)


def _looks_like_bus_pirate(port) -> bool:
    if (port.vid, port.pid) != FTDI_USB_ID:
        return True
    product = getattr(port, "product", None)
    return not product or "bus pirate" in product.lower() or "ft232r" in product.lower()


def _classify(port) -> Optional[DeviceInfo]:
    """DeviceInfo for a USB serial port, None for non-USB ports."""
    if not (port.vid and port.pid):
        return None

    known = KNOWN_USB_DEVICES.get((port.vid, port.pid))
    if known and _looks_like_bus_pirate(port):
        name, device_type, caps = known
    else:
        name = f"Unknown ({port.vid:04x}:{port.pid:04x})"
        device_type, caps = "unknown", []

    return DeviceInfo(
        name=name,
        device_type=device_type,
        port=port.device,
        vid=port.vid,
        pid=port.pid,
        serial=port.serial_number,
        capabilities=list(caps),
    )


def list_devices(include_unknown: bool = False) -> list[DeviceInfo]:
    """
    Serial ports in enumeration order.

    Only Bus Pirates are returned unless include_unknown is set, in which
    case every other USB serial port is listed as "unknown" as well.
    """
    devices = []
    for port in serial.tools.list_ports.comports():
        info = _classify(port)
        if info is None:
            continue
        if info.device_type == "unknown" and not include_unknown:
            continue
        devices.append(info)
    return devices


def detect() -> dict[str, DeviceInfo]:
    """
    Bus Pirates keyed by device type.

    The first board is "buspirate", further ones "buspirate_1",
    "buspirate_2" and so on.
    """
    seen = Counter()
    result = {}
    for dev in list_devices():
        index = seen[dev.device_type]
        seen[dev.device_type] += 1
        result[dev.device_type if index == 0 else f"{dev.device_type}_{index}"] = dev
    return result


def find_port() -> Optional[str]:
    """Serial port of the first detected Bus Pirate, or None."""
    return next((dev.port for dev in list_devices() if dev.port), None)


def print_detected_devices(include_unknown: bool = True):
    """Print a table of detected serial devices."""
    devices = list_devices(include_unknown=include_unknown)

    if not devices:
        print("No Bus Pirate detected.")
        print("\nTroubleshooting:")
        print("  - Check the USB cable and that the board's power LED is on")
        print("  - v3 boards need the FTDI VCP driver on Windows and macOS")
        print("  - Pass the port explicitly with --port if it is not listed")
        return

    print(f"{'Port':<20} {'Name':<28} {'USB ID':<10} {'Serial':<12} {'Modes'}")
    print("-" * 84)
    for dev in devices:
        modes = ", ".join(dev.capabilities) or "-"
        print(f"{dev.port or 'N/A':<20} {dev.name:<28} {dev.usb_id:<10} "
              f"{dev.serial or '-':<12} {modes}")


if __name__ == "__main__":
    print_detected_devices()
