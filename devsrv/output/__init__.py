"""Output modules for devsrv"""

from .console import ConsoleSink
from .json import JSONOutputFormatter, SessionInfo, build_session_info, validate_output_schema

__all__ = [
    "ConsoleSink",
    "JSONOutputFormatter",
    "SessionInfo",
    "build_session_info",
    "validate_output_schema",
]
