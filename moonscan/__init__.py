"""Discovery and health checks for Moonraker/Klipper 3D printer hosts."""

__version__ = "0.3.0"
