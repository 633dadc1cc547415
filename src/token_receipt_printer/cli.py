import argparse
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path

from token_receipt_printer.config.manager import DEFAULTS_FILE, ConfigManager, find_config_file
from token_receipt_printer.errors import ConfigError, DeviceError
from token_receipt_printer.jobs.models import PrintJob


def get_config_path():
    """Get the active config file path (matching ConfigManager priority)."""
    existing = find_config_file()
    if existing:
        return existing
    # Default: per-user config
    return Path.home() / '.token_receipt_printer' / 'config.toml'


def sample_job() -> PrintJob:
    """A 4.5 USDT receipt with fixed addresses, used for test prints."""
    return PrintJob(
        id=f"TEST-{int(datetime.now().timestamp() * 1000)}",
        transaction_hash='0x1234567890abcdef1234567890abcdef12345678',
        amount_raw='4500000000000000000',
        token='USDT',
        from_address='0xabc123def456789012345678901234567890abcd',
        to_address='0xdef456789012345678901234567890abcdef1234',
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='token-receipt-printer',
        description='Token Receipt Printer CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Command to update configuration
    config_parser = subparsers.add_parser('config', help='Manage configuration settings')
    config_parser.add_argument('--base-url', type=str, help='Receipt queue server URL (e.g., https://example.ngrok-free.app)')
    config_parser.add_argument('--printer-type', choices=['serial', 'tcp', 'file'], help='Print sink type')
    config_parser.add_argument('--serial-port', type=str, help='Serial device of the thermal printer (e.g., /dev/ttyS4)')
    config_parser.add_argument('--printer-host', type=str, help='Host of a network (tcp) printer')
    config_parser.add_argument('--mode', choices=['korean', 'english'], help='Receipt layout')
    config_parser.add_argument('--show', action='store_true', help='Show current configuration')

    # Command to start the worker
    subparsers.add_parser('start', help='Start polling and printing receipts')

    # Command to check server connectivity
    subparsers.add_parser('status', help='Check queue server connectivity')

    # Command to print a sample receipt
    test_parser = subparsers.add_parser('test-print', help='Print a sample 4.5 USDT receipt')
    test_parser.add_argument('--dry-run', action='store_true', help='Show the command stream instead of printing')

    args = parser.parse_args(argv)

    try:
        if args.command == 'config':
            return manage_config(args)
        elif args.command == 'start':
            return start_server()
        elif args.command == 'status':
            return check_status()
        elif args.command == 'test-print':
            return test_print(args.dry_run)
        else:
            parser.print_help()
            return 1
    except ConfigError as e:
        print(f"✗ Configuration error: {e}")
        return 1


def manage_config(args):
    """Manage configuration settings"""
    config_path = get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(DEFAULTS_FILE, config_path)
        print(f"Created new configuration file at: {config_path}")

    config_manager = ConfigManager(str(config_path))

    if args.show:
        settings = config_manager.settings()
        print("\n=== Current Configuration ===")
        print(f"Configuration file: {config_path}")
        print("\n[Server]")
        print(f"  Base URL: {settings.base_url}")
        print(f"  Poll interval: {settings.poll_interval_ms} ms")
        print(f"  Timeouts: connect {settings.connect_timeout:g}s / read {settings.read_timeout:g}s")
        print("\n[Printer]")
        print(f"  Type: {settings.printer_type}")
        if settings.printer_type == 'serial':
            print(f"  Serial port: {settings.serial_port} @ {settings.baud_rate}")
        elif settings.printer_type == 'tcp':
            print(f"  Host: {settings.printer_host}:{settings.printer_port}")
        else:
            print(f"  Output dir: {settings.output_dir}")
        print("\n[Receipt]")
        print(f"  Mode: {settings.receipt_mode}")
        print(f"  Product: {settings.product_name}")
        print(f"  Time zone: {settings.timezone}")
        print(f"  Encodings: {', '.join(settings.encodings)}")
        return 0

    updates = {}
    if args.base_url:
        updates['server.base_url'] = args.base_url
    if args.printer_type:
        updates['printer.type'] = args.printer_type
    if args.serial_port:
        updates['printer.serial_port'] = args.serial_port
    if args.printer_host:
        updates['printer.host'] = args.printer_host
    if args.mode:
        updates['receipt.mode'] = args.mode

    if updates:
        for key, value in updates.items():
            config_manager.set(key, value)
        # Fail now rather than at the next start
        config_manager.settings()
        print("\n✓ Configuration updated successfully!")
        for key, value in updates.items():
            print(f"  {key}: {value}")
    else:
        print("No configuration changes specified. Use --help to see available options.")
    return 0


def start_server():
    """Start the polling worker"""
    from token_receipt_printer.main import run_server
    print("Starting Token Receipt Printer...")
    return run_server()


def check_status():
    """Check queue server and printer connectivity"""
    from token_receipt_printer.main import build_client, build_printer
    settings = ConfigManager().settings()
    print(f"Checking {settings.base_url} ...")
    client = build_client(settings)
    try:
        connected = client.check_connection()
    finally:
        client.close()
    if connected:
        print("✓ Server connected")
    else:
        print("✗ Server not reachable")

    sink = build_printer(settings).sink
    printer_ok = sink.test_connection()
    if printer_ok:
        print(f"✓ Printer ready: {sink}")
    else:
        print(f"✗ Printer not reachable: {sink}")
    return 0 if connected and printer_ok else 1


def test_print(dry_run=False):
    """Print (or dump) a sample receipt"""
    from token_receipt_printer.main import build_printer
    from token_receipt_printer.printers.escpos import describe

    settings = ConfigManager().settings()
    job = sample_job()

    if dry_run:
        printer = build_printer(settings, printer_type='file')
        buffer = printer.render(job)
        print(f"Sample receipt ({settings.receipt_mode}, {len(buffer)} bytes):")
        for line in describe(buffer):
            print(f"  {line}")
        return 0

    printer = build_printer(settings)
    try:
        printer.print_job(job)
    except DeviceError as e:
        print(f"✗ Test print failed: {e}")
        return 1
    print(f"✓ Test receipt sent to {printer.sink}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
