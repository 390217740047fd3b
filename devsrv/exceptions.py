"""Errors raised while negotiating ports and managing the dev server"""

from typing import Optional


class DevServerError(Exception):
    """Base class for dev server management errors"""


class PortError(DevServerError):
    """Raised when the ports for a launch cannot be negotiated"""

    def __init__(self, message: str, port: Optional[int] = None):
        self.port = port
        super().__init__(message)


class InvalidPort(PortError):
    """Raised when a requested port is outside the valid range"""

    def __init__(self, port: int, message: Optional[str] = None):
        super().__init__(message or "Port must be between 0 and 65535.", port)


class PortInUse(PortError):
    """Raised when an explicitly requested port is already bound"""

    def __init__(self, port: int):
        super().__init__(f"Port {port} is in use.", port)


class NoFreePort(PortError):
    """Raised when the admin port is taken and no fallback could be allocated"""

    def __init__(self, port: int):
        super().__init__(f"Default admin port {port} is in use.", port)


class LaunchError(DevServerError):
    """Raised when the dev server subprocess cannot be spawned"""


class InvalidStateError(DevServerError):
    """Raised when an operation is not allowed in the current server state"""


class ShutdownError(DevServerError):
    """Raised when the graceful shutdown request could not be delivered"""
