# Utility functions
from .ports import PortProber, find_free_ports, is_port_in_use
from .system import get_process_info, kill_process_tree

__all__ = [
    "PortProber",
    "find_free_ports",
    "is_port_in_use",
    "get_process_info",
    "kill_process_tree",
]
