"""devsrv - Local App Engine dev server management"""

__version__ = "0.1.0"

from .core.lifecycle import ServerLifecycle, ServerState
from .core.negotiator import PortNegotiator
from .core.output import OutputEventParser
from .config.models import SessionConfig, ServerConfig

__all__ = [
    "ServerLifecycle",
    "ServerState",
    "PortNegotiator",
    "OutputEventParser",
    "SessionConfig",
    "ServerConfig",
]
