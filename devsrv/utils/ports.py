# Port utilities
"""Port probing and ephemeral port allocation"""

import errno
import socket
import logging
from contextlib import ExitStack
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

SocketFactory = Callable[[], socket.socket]

def _new_ephemeral_socket(host: str = "127.0.0.1") -> socket.socket:
    """Open a listening socket on a port chosen by the OS"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, 0))
        sock.listen(1)
    except OSError:
        sock.close()
        raise
    return sock

def is_port_in_use(port: int, host: str = "") -> bool:
    """Check whether a test listener can be bound on the port"""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, port))
            sock.listen(1)
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            return True
        # Anything else (e.g. privileged port) is not evidence of an occupant
        logger.debug(f"Could not probe port {port}: {str(e)}")
        return False
    return False

def find_free_ports(count: int, socket_factory: Optional[SocketFactory] = None) -> List[int]:
    """Find `count` distinct free ports

    All sockets are held open at the same time so the OS cannot hand out the
    same ephemeral port twice, then every one of them is closed before
    returning. Returns an empty list if fewer than `count` sockets could be
    opened, or if `count` is zero or negative.
    """
    if count <= 0:
        return []

    factory = socket_factory or _new_ephemeral_socket
    ports: List[int] = []

    with ExitStack() as stack:
        try:
            for _ in range(count):
                sock = factory()
                stack.callback(sock.close)
                ports.append(sock.getsockname()[1])
        except Exception as e:
            logger.warning(f"Could only allocate {len(ports)} of {count} free ports: {str(e)}")
            return []

    logger.debug(f"Found free ports: {ports}")
    return ports

class PortProber:
    """Probes and allocates ports on the local machine"""

    def __init__(self, host: str = "", socket_factory: Optional[SocketFactory] = None):
        self.host = host
        self.socket_factory = socket_factory

    def is_port_in_use(self, port: int) -> bool:
        return is_port_in_use(port, self.host)

    def find_free_ports(self, count: int) -> List[int]:
        return find_free_ports(count, self.socket_factory)
