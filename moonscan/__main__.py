"""Entry point for running the scanner as a module."""

import argparse
import asyncio
import atexit
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pydantic import ValidationError

from .errors import InvalidSubnet
from .models.config import Config, SubnetConfig
from .models.scan_result import DeviceStatus, HostRecord, ScanProgress, ScanResult
from .services.host_store import HostStore
from .services.monitor import HostMonitor, StatusChange
from .services.network_scanner import NetworkScanner
from .services.subnet import is_valid_ip, is_valid_subnet

# Set while the monitor runs so signal handlers can stop it
_stop_event: asyncio.Event | None = None
_loop: asyncio.AbstractEventLoop | None = None
_logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """Configure logging with rotation support.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR)
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    # Try to add rotating file handler
    log_dir = Path("logs")
    try:
        log_dir.mkdir(exist_ok=True)
        # Rotate at 10MB, keep 5 backup files
        file_handler = RotatingFileHandler(
            log_dir / "moonscan.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        handlers.append(file_handler)
    except (PermissionError, OSError):
        pass  # Skip file logging if we can't write

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _signal_handler(signum: int, frame: object) -> None:
    """Handle shutdown signals gracefully.

    Args:
        signum: Signal number received
        frame: Current stack frame (unused)
    """
    signal_name = signal.Signals(signum).name
    _logger.info(f"Received {signal_name}, shutting down gracefully...")

    if _stop_event is not None and _loop is not None:
        _loop.call_soon_threadsafe(_stop_event.set)
    else:
        raise KeyboardInterrupt


def _cleanup() -> None:
    """Cleanup handler called on exit."""
    _logger.debug("moonscan shutdown complete")


def setup_signal_handlers() -> None:
    """Set up signal handlers for graceful shutdown."""
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    atexit.register(_cleanup)


def format_hosts(hosts: list[HostRecord]) -> str:
    """Render hosts as a plain-text table."""
    if not hosts:
        return "No printers found."

    lines = [f"{'IP':<16} {'NAME':<24} {'STATUS':<8} {'DEVICE':<11} {'KLIPPY':<12} VERSION"]
    for host in hosts:
        lines.append(
            f"{host.ip_address:<16} {host.display_name[:24]:<24} {host.status.value:<8} "
            f"{host.device_status.value:<11} {(host.klippy_state or '-'):<12} "
            f"{host.moonraker_version or '-'}"
        )
    return "\n".join(lines)


def format_summary(result: ScanResult) -> str:
    """One-line summary of a scan result."""
    summary = (
        f"{result.online_hosts} online of {result.total_hosts} addresses scanned "
        f"in {result.duration_seconds:.1f}s"
    )
    busy = []
    for status in (DeviceStatus.PRINTING, DeviceStatus.PAUSED, DeviceStatus.ERROR):
        hosts = result.by_status(status)
        if hosts:
            busy.append(f"{len(hosts)} {status.value}")
    if busy:
        summary += f", {', '.join(busy)}"
    if result.offline_hosts:
        summary += f", {len(result.offline_hosts)} with Klippy disconnected"
    if result.cancelled:
        summary += " (cancelled)"
    return summary


def _print_progress(progress: ScanProgress) -> None:
    _logger.debug(f"[{progress.percentage:3d}%] {progress.message}")


async def run_scan(config: Config, store: HostStore) -> int:
    scanner = NetworkScanner(config.scanner)
    if not config.enabled_subnets:
        print("No subnets enabled for scanning. Add one to the config or pass --subnet.")
        return 1

    try:
        result = await scanner.scan(config.subnets, progress_callback=_print_progress)
    except InvalidSubnet as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    new_ips = await store.merge_scan(result)
    store.save()

    print(format_hosts(result.hosts))
    print(f"\n{format_summary(result)} ({len(new_ips)} new)")
    return 0


async def run_check(config: Config, store: HostStore, ip: str) -> int:
    if not is_valid_ip(ip):
        print(f"Error: '{ip}' is not a valid IP address", file=sys.stderr)
        return 2

    scanner = NetworkScanner(config.scanner)

    if store.get_host(ip) is None:
        record = await scanner.scan_host(ip)
        if record is None:
            print(f"{ip}: no Moonraker host found")
            return 1
        await store.add_host(record)
        store.save()
        print(format_hosts([record]))
        return 0

    response = await scanner.check_host(ip)
    host = await store.apply_status_check(ip, response)
    store.save()
    print(format_hosts([host] if host else []))
    if host is not None and not response.success:
        print(f"\nCheck failed ({host.failed_attempts} consecutive failures)")
    return 0 if response.success else 1


async def run_monitor(config: Config, store: HostStore) -> int:
    global _stop_event, _loop

    if not config.monitor.enabled:
        print("Monitoring is disabled in the configuration.")
        return 1
    if store.count == 0:
        print("No known hosts. Run a scan first.")
        return 1

    def notify(change: StatusChange) -> None:
        print(f"[{change.changed_at:%H:%M:%S}] {change.describe()}", flush=True)

    monitor = HostMonitor(
        NetworkScanner(config.scanner),
        store,
        config=config.monitor,
        notifications=config.notifications,
        on_change=notify,
    )

    _loop = asyncio.get_running_loop()
    _stop_event = asyncio.Event()
    monitor.start()
    try:
        await _stop_event.wait()
    finally:
        await monitor.stop()
        _stop_event = None
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="moonscan - discover and monitor Moonraker/Klipper printers on local networks"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to configuration file (default: config.json)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(dest="command")
    scan_parser = subparsers.add_parser("scan", help="Scan subnets for printers")
    scan_parser.add_argument(
        "-s",
        "--subnet",
        action="append",
        default=[],
        metavar="CIDR",
        help="Subnet to scan instead of the configured ones (repeatable)",
    )
    check_parser = subparsers.add_parser("check", help="Check the status of one host")
    check_parser.add_argument("ip", help="IP address of the host")
    subparsers.add_parser("hosts", help="List known hosts")
    subparsers.add_parser("monitor", help="Poll known hosts and report status changes")

    args = parser.parse_args()

    # Handle version flag
    if args.version:
        from . import __version__

        print(f"moonscan v{__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        config = Config.load_or_default(args.config)
    except (ValidationError, ValueError) as e:
        print(f"Invalid config file {args.config}: {e}", file=sys.stderr)
        sys.exit(2)

    # Setup logging
    log_level = "DEBUG" if args.verbose else config.settings.log_level
    setup_logging(log_level)

    # Setup signal handlers for graceful shutdown
    setup_signal_handlers()

    store = HostStore(config.settings.hosts_path, config.monitor.failure_threshold)

    if args.command == "scan":
        if args.subnet:
            invalid = [s for s in args.subnet if not is_valid_subnet(s)]
            if invalid:
                print(f"Error: invalid subnet {', '.join(invalid)}", file=sys.stderr)
                sys.exit(2)
            config.subnets = [SubnetConfig(name=s, range=s) for s in args.subnet]
        exit_code = asyncio.run(run_scan(config, store))
    elif args.command == "check":
        exit_code = asyncio.run(run_check(config, store, args.ip))
    elif args.command == "monitor":
        exit_code = asyncio.run(run_monitor(config, store))
    else:
        print(format_hosts(store.get_all_hosts()))
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
