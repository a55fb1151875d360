"""
bpbin CLI - Bus Pirate binary mode tool

Command-line interface using Click.
"""

import json
from contextlib import contextmanager

import click

from . import __version__
from .config import SerialConfig
from .detect import find_port, list_devices, print_detected_devices
from .errors import BusPirateError, NackError
from .session import BusPirate
from .transport import SerialTransport


def _parse_int(value: str, name: str) -> int:
    """Parse decimal or 0x-prefixed hex."""
    try:
        return int(value, 16) if value.lower().startswith('0x') else int(value)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not a number", param_hint=name)


@contextmanager
def _bus_pirate(ctx: click.Context):
    """Open a session on the selected port, report driver errors, close it."""
    obj = ctx.obj

    try:
        transport = obj.get('transport')
        if transport is None:
            port = obj.get('port') or find_port()
            if not port:
                click.echo("No Bus Pirate found (use --port or BPBIN_PORT)", err=True)
                ctx.exit(1)
            config = SerialConfig.from_env(port=port, baudrate=obj.get('baudrate'))
            transport = SerialTransport(config)

        with BusPirate(transport, debug=obj.get('verbose', False)) as bp:
            yield bp
    except BusPirateError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)


# --------------------------------------------------------------------------
# CLI Group
# --------------------------------------------------------------------------

@click.group()
@click.version_option(version=__version__)
@click.option('-v', '--verbose', is_flag=True, help='Verbose output')
@click.option('-p', '--port', envvar='BPBIN_PORT', help='Serial port (default: first detected)')
@click.option('-b', '--baudrate', type=int, default=None, envvar='BPBIN_BAUDRATE',
              help='Baud rate (default 115200)')
@click.pass_context
def cli(ctx, verbose, port, baudrate):
    """bpbin - Bus Pirate binary mode tool

    Drives a Bus Pirate v3/v4 through its binary interface.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['port'] = port
    ctx.obj['baudrate'] = baudrate


# --------------------------------------------------------------------------
# Device Detection
# --------------------------------------------------------------------------

@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.option('--all', 'show_all', is_flag=True, help='Include unknown devices')
def detect_cmd(as_json, show_all):
    """Detect connected Bus Pirates."""
    if as_json:
        output = [
            {
                "name": d.name,
                "type": d.device_type,
                "port": d.port,
                "vid": f"{d.vid:04x}" if d.vid else None,
                "pid": f"{d.pid:04x}" if d.pid else None,
                "serial": d.serial,
                "capabilities": d.capabilities,
            }
            for d in list_devices(include_unknown=show_all)
        ]
        click.echo(json.dumps(output, indent=2))
    else:
        print_detected_devices(include_unknown=show_all)


# Aliases for convenience
cli.add_command(detect_cmd, name='detect')
cli.add_command(detect_cmd, name='devices')


@cli.command()
@click.pass_context
def reset(ctx):
    """Enter binary mode and leave it again."""
    with _bus_pirate(ctx) as bp:
        mode, version = bp.get_mode()
        click.echo(f"Binary mode OK ({mode.name} v{version})")
    click.echo("Bus Pirate returned to terminal mode")


# --------------------------------------------------------------------------
# I2C Commands
# --------------------------------------------------------------------------

@cli.group()
def i2c():
    """I2C operations."""
    pass


def _probe_address(handle, addr: int) -> bool:
    """Address the device for writing and report whether it ACKed."""
    handle.start()
    try:
        handle.write_byte(addr << 1)
        found = True
    except NackError:
        found = False
    handle.stop()
    return found


@i2c.command('probe')
@click.argument('address')
@click.pass_context
def i2c_probe(ctx, address):
    """Check whether a device answers at ADDRESS."""
    addr = _parse_int(address, 'ADDRESS')
    with _bus_pirate(ctx) as bp:
        handle = bp.enter_i2c_mode()
        if _probe_address(handle, addr):
            click.echo(f"0x{addr:02x}: ACK")
        else:
            click.echo(f"0x{addr:02x}: NACK")


@i2c.command('scan')
@click.option('--start', 'start_addr', default='0x08', help='First address')
@click.option('--end', 'end_addr', default='0x77', help='Last address')
@click.pass_context
def i2c_scan(ctx, start_addr, end_addr):
    """Scan I2C bus for devices."""
    first = _parse_int(start_addr, '--start')
    last = _parse_int(end_addr, '--end')

    with _bus_pirate(ctx) as bp:
        handle = bp.enter_i2c_mode()
        found = [addr for addr in range(first, last + 1) if _probe_address(handle, addr)]

    if found:
        click.echo(f"Found {len(found)} device(s):")
        for addr in found:
            click.echo(f"  0x{addr:02x}")
    else:
        click.echo("No devices found")


@i2c.command('read')
@click.argument('address')
@click.argument('register')
@click.argument('length', type=int)
@click.option('--strict', is_flag=True, help='Single bus transaction (slow)')
@click.pass_context
def i2c_read(ctx, address, register, length, strict):
    """Read LENGTH bytes from REGISTER of the device at ADDRESS."""
    addr = _parse_int(address, 'ADDRESS')
    reg = _parse_int(register, 'REGISTER')
    buf = bytearray(length)

    with _bus_pirate(ctx) as bp:
        handle = bp.enter_i2c_mode() if strict else bp.enter_nonstrict_i2c_mode()
        handle.transact_8x8(addr, reg, b'', buf)

    click.echo(buf.hex(' '))


@i2c.command('write')
@click.argument('address')
@click.argument('register')
@click.argument('data')
@click.option('--strict', is_flag=True, help='Single bus transaction (slow)')
@click.pass_context
def i2c_write(ctx, address, register, data, strict):
    """Write hex DATA to REGISTER of the device at ADDRESS."""
    addr = _parse_int(address, 'ADDRESS')
    reg = _parse_int(register, 'REGISTER')
    try:
        payload = bytes.fromhex(data)
    except ValueError:
        raise click.BadParameter(f"{data!r} is not hex", param_hint='DATA')

    with _bus_pirate(ctx) as bp:
        handle = bp.enter_i2c_mode() if strict else bp.enter_nonstrict_i2c_mode()
        written, _ = handle.transact_8x8(addr, reg, payload, bytearray())

    click.echo(f"Wrote {written} byte(s) to 0x{addr:02x} register 0x{reg:02x}")


# --------------------------------------------------------------------------
# Entry Point
# --------------------------------------------------------------------------

def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
