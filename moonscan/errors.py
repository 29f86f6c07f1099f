"""Exceptions raised by the discovery and health-check pipeline."""


class ScannerError(Exception):
    """Base class for scanner errors."""


class InvalidSubnet(ScannerError, ValueError):
    """Raised when a subnet string cannot be expanded into host addresses."""

    def __init__(self, subnet: str, reason: str = ""):
        self.subnet = subnet
        self.reason = reason
        message = f"Invalid subnet '{subnet}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ApiFailure(ScannerError):
    """Raised when a Moonraker endpoint fails after all retries or returns garbage."""

    def __init__(self, address: str, endpoint: str, reason: str):
        self.address = address
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"API error from {address} on /{endpoint}: {reason}")
