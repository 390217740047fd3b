"""Service and admin port negotiation before a dev server launch"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config.models import DEFAULT_ADMIN_PORT
from ..exceptions import InvalidPort, NoFreePort, PortInUse
from ..utils.ports import PortProber

logger = logging.getLogger(__name__)

MAX_PORT = 65535

@dataclass(frozen=True)
class NegotiatedPorts:
    """Ports to pass to the dev server; 0 means the dev server picks and reports it"""
    service_port: int
    admin_port: int

class PortNegotiator:
    """Resolves the service and admin ports for one launch attempt

    The service port is never pre-allocated when the user asks for port 0:
    the dev server binds it itself and reports it in its output, and
    reserving then releasing it here would let another process take it.
    """

    def __init__(self, prober: Optional[PortProber] = None, admin_port_fallback: str = "fail"):
        if admin_port_fallback not in ("fail", "auto"):
            raise ValueError(f"Unknown admin port fallback policy: {admin_port_fallback}")
        self.prober = prober or PortProber()
        self.admin_port_fallback = admin_port_fallback

    def resolve(
        self,
        requested_service_port: int,
        admin_port_default: int = DEFAULT_ADMIN_PORT,
        failover_admin_port_bound: bool = False,
    ) -> NegotiatedPorts:
        """Validate the requested ports and resolve conflicts

        Raises:
            InvalidPort: a port is outside 0-65535
            PortInUse: the explicitly requested service port is bound
            NoFreePort: the admin port is bound and no fallback is allowed
        """
        if requested_service_port < 0 or requested_service_port > MAX_PORT:
            raise InvalidPort(requested_service_port)
        if admin_port_default < 0 or admin_port_default > MAX_PORT:
            raise InvalidPort(admin_port_default)

        if requested_service_port != 0 and self.prober.is_port_in_use(requested_service_port):
            raise PortInUse(requested_service_port)

        admin_port = admin_port_default
        if admin_port_default != 0 and self._admin_port_taken(requested_service_port, admin_port_default):
            logger.info(f"Default admin port {admin_port_default} is in use. Picking an unused port.")
            admin_port = self._fallback_admin_port(
                requested_service_port, admin_port_default, failover_admin_port_bound
            )

        ports = NegotiatedPorts(service_port=requested_service_port, admin_port=admin_port)
        logger.info(
            f"Negotiated ports: service={ports.service_port or 'auto'}, admin={ports.admin_port or 'auto'}"
        )
        return ports

    def _admin_port_taken(self, service_port: int, admin_port: int) -> bool:
        if admin_port == service_port:
            return True
        return self.prober.is_port_in_use(admin_port)

    def _fallback_admin_port(self, service_port: int, admin_port_default: int, sticky: bool) -> int:
        # With an auto service port both ports come from one call so the two
        # allocations cannot race each other for the same ephemeral port.
        count = 2 if service_port == 0 else 1
        free_ports = self.prober.find_free_ports(count)

        if len(free_ports) >= count:
            admin_port = free_ports[count - 1]
            logger.info(f"Using failover admin port {admin_port}")
            return admin_port

        if sticky or self.admin_port_fallback == "auto":
            logger.info("No free port available; letting the dev server pick the admin port")
            return 0

        raise NoFreePort(admin_port_default)
