"""Maps connectivity, Klippy state and printer flags to a single device status."""

from ..models.printer import KLIPPY_DISCONNECTED, PrinterFlags
from ..models.scan_result import DeviceStatus


def resolve_device_status(
    reachable: bool,
    klippy_state: str | None = None,
    flags: PrinterFlags | None = None,
) -> DeviceStatus:
    """Resolve the device status; the first matching rule wins.

    Order: offline (unreachable or Klippy disconnected), cancelling, error,
    paused, printing, standby. Missing flags on a reachable host mean standby.
    """
    if not reachable or klippy_state == KLIPPY_DISCONNECTED:
        return DeviceStatus.OFFLINE
    if flags is None:
        return DeviceStatus.STANDBY
    if flags.cancelling:
        return DeviceStatus.CANCELLING
    if flags.error:
        return DeviceStatus.ERROR
    if flags.paused:
        return DeviceStatus.PAUSED
    if flags.printing:
        return DeviceStatus.PRINTING
    return DeviceStatus.STANDBY
