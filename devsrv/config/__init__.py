# Configuration management
from .models import SessionConfig, ServerConfig, DEFAULT_ADMIN_PORT, DEFAULT_SERVER_PORT
from .validation import validate_config, get_dev_server_args

__all__ = [
    "SessionConfig",
    "ServerConfig",
    "DEFAULT_ADMIN_PORT",
    "DEFAULT_SERVER_PORT",
    "validate_config",
    "get_dev_server_args",
]
