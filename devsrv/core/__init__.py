# Core functionality
from .lifecycle import ServerLifecycle, ServerState, StateChange
from .negotiator import NegotiatedPorts, PortNegotiator
from .output import (
    OutputEventParser,
    PortDiscovered,
    PortRole,
    ServerStarted,
    ServerStopped,
    extract_port,
)
from .server import DevServerLauncher, DevServerProcess, LaunchRequest

__all__ = [
    "ServerLifecycle",
    "ServerState",
    "StateChange",
    "NegotiatedPorts",
    "PortNegotiator",
    "OutputEventParser",
    "PortDiscovered",
    "PortRole",
    "ServerStarted",
    "ServerStopped",
    "extract_port",
    "DevServerLauncher",
    "DevServerProcess",
    "LaunchRequest",
]
