"""Structured events inferred from dev server output

The dev server prints free-form log lines; a handful of them carry the
information we need: the URL each module is served on, the admin server URL,
a readiness banner, and the Python traceback header that precedes a crash.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Union
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

# App Engine standard and flexible environments respectively
READY_MARKERS = ("Dev App Server is now running", ".Server:main: Started")
FATAL_BANNER = "Traceback (most recent call last):"
MODULE_MARKER = "Starting module"
MODULE_URL_MARKER = "running at: http://"
DEFAULT_MODULE = "default"
ADMIN_MARKER = "Starting admin server at: http://"
URL_SCHEME = "http://"

_MODULE_NAME = re.compile(r'Starting module "([^"]*)"')


class PortRole(str, Enum):
    SERVICE = "service"
    ADMIN = "admin"


@dataclass(frozen=True)
class PortDiscovered:
    role: PortRole
    port: int


@dataclass(frozen=True)
class ServerStarted:
    line: str


@dataclass(frozen=True)
class ServerStopped:
    """The dev server died; always a crash, never a clean shutdown"""
    line: str


OutputEvent = Union[PortDiscovered, ServerStarted, ServerStopped]


@dataclass(frozen=True)
class ModuleCandidate:
    name: Optional[str]
    port: int


def extract_port(line: str) -> Optional[int]:
    """Port of the last http:// URL on the line, or None

    None means no port could be found; it is never conflated with port 0.
    """
    begin = line.rfind(URL_SCHEME)
    if begin != -1:
        url = line[begin:].split()[0]
        try:
            port = urlsplit(url).port
        except ValueError:
            port = None
        if port is not None:
            return port

    logger.warning(f"Cannot extract port from server output: {line}")
    return None


class OutputEventParser:
    """Turns dev server output lines into events, one parser per launch

    Lines must be fed in the order the dev server wrote them. Module URLs
    are held as a candidate until the admin server line arrives, since that
    line is printed after every module has been started. A module named
    "default" always replaces the candidate; otherwise the first module wins.
    """

    def __init__(self, service_port: int = 0, admin_port: int = 0):
        self.service_port = service_port
        self.admin_port = admin_port
        self.candidate: Optional[ModuleCandidate] = None

    def feed(self, line: str) -> List[OutputEvent]:
        """Parse one line; unrecognized lines produce no events"""
        line = line.rstrip("\r\n")

        if line.endswith(READY_MARKERS):
            return [ServerStarted(line)]

        if line == FATAL_BANNER:
            return [ServerStopped(line)]

        if MODULE_MARKER in line and MODULE_URL_MARKER in line:
            self._observe_module(line)
            return []

        if ADMIN_MARKER in line:
            return self._commit(line)

        return []

    def parse(self, lines: Iterable[str]) -> Iterator[OutputEvent]:
        for line in lines:
            yield from self.feed(line)

    def _observe_module(self, line: str):
        match = _MODULE_NAME.search(line)
        name = match.group(1) if match else None

        if self.candidate is not None and name != DEFAULT_MODULE:
            return

        port = extract_port(line)
        if port is None:
            return

        self.candidate = ModuleCandidate(name=name, port=port)
        logger.debug(f"Service port candidate: module {name} on {port}")

    def _commit(self, line: str) -> List[OutputEvent]:
        events: List[OutputEvent] = []

        # An explicitly configured service port always wins over discovery
        if self.service_port == 0 and self.candidate is not None:
            self.service_port = self.candidate.port
            events.append(PortDiscovered(PortRole.SERVICE, self.service_port))
        self.candidate = None

        if self.admin_port == 0:
            port = extract_port(line)
            if port is not None:
                self.admin_port = port
                events.append(PortDiscovered(PortRole.ADMIN, port))

        return events
