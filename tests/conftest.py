"""
Pytest configuration and shared fixtures

Provides a fake launcher and a mock port prober so the lifecycle can be
driven line by line without spawning a dev server.
"""

import asyncio
from typing import List, Optional
from unittest.mock import Mock

import pytest

from devsrv.config.models import ServerConfig
from devsrv.core.negotiator import PortNegotiator
from devsrv.core.server import LaunchRequest


class FakeProcess:
    """Stands in for DevServerProcess"""

    def __init__(self, pid: int = 4242):
        self.pid = pid
        self.is_running = True
        self.returncode = None
        self.kill = Mock(side_effect=self._killed)

    def _killed(self):
        self.is_running = False
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


class FakeLauncher:
    """Records launches and exposes the callbacks the lifecycle registered"""

    def __init__(self):
        self.requests: List[LaunchRequest] = []
        self.processes: List[FakeProcess] = []
        self.request_shutdown = Mock()
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.on_line = None
        self.on_exit = None
        self.sink = None

    async def launch(self, request, on_start, on_line, on_exit, sink=None):
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        process = FakeProcess(pid=4242 + len(self.processes))
        self.processes.append(process)
        self.on_line = on_line
        self.on_exit = on_exit
        self.sink = sink
        on_start(process)
        return process

    def emit(self, *lines: str):
        for line in lines:
            if self.sink:
                self.sink(line)
            self.on_line(line)

    @property
    def process(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def prober() -> Mock:
    """Port prober reporting every port free"""
    prober = Mock()
    prober.is_port_in_use.return_value = False
    prober.find_free_ports.return_value = []
    return prober


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(port=0, app_dirs=["/tmp/app"])


@pytest.fixture
def negotiator(prober) -> PortNegotiator:
    return PortNegotiator(prober=prober)


SERVER_OUTPUT_DEFAULT_MODULE_FIRST = [
    "WARNING  2016-11-03 21:11:21,930 devappserver2.py:785] DEFAULT_VERSION_HOSTNAME will not be set correctly with --port=0",
    "INFO     2016-11-03 21:11:21,956 api_server.py:205] Starting API server at: http://localhost:52892",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"default\" running at: http://localhost:55948",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"second\" running at: http://localhost:8081",
    "INFO     2016-11-03 21:11:21,959 admin_server.py:116] Starting admin server at: http://localhost:43679",
    "Nov 03, 2016 9:11:23 PM com.google.appengine.tools.development.SystemPropertiesManager setSystemProperties",
]

SERVER_OUTPUT_DEFAULT_MODULE_SECOND = [
    "WARNING  2016-11-03 21:11:21,930 devappserver2.py:785] DEFAULT_VERSION_HOSTNAME will not be set correctly with --port=0",
    "INFO     2016-11-03 21:11:21,956 api_server.py:205] Starting API server at: http://localhost:52892",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"first\" running at: http://localhost:55948",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"default\" running at: http://localhost:8081",
    "INFO     2016-11-03 21:11:21,959 admin_server.py:116] Starting admin server at: http://localhost:43679",
    "Nov 03, 2016 9:11:23 PM com.google.appengine.tools.development.SystemPropertiesManager setSystemProperties",
]

SERVER_OUTPUT_NO_DEFAULT_MODULE = [
    "WARNING  2016-11-03 21:11:21,930 devappserver2.py:785] DEFAULT_VERSION_HOSTNAME will not be set correctly with --port=0",
    "INFO     2016-11-03 21:11:21,956 api_server.py:205] Starting API server at: http://localhost:52892",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"first\" running at: http://localhost:8181",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"second\" running at: http://localhost:8182",
    "INFO     2016-11-03 21:11:21,959 dispatcher.py:197] Starting module \"third\" running at: http://localhost:8183",
    "INFO     2016-11-03 21:11:21,959 admin_server.py:116] Starting admin server at: http://localhost:43679",
    "Nov 03, 2016 9:11:23 PM com.google.appengine.tools.development.SystemPropertiesManager setSystemProperties",
]


@pytest.fixture
def server_output():
    """Captured dev_appserver output, keyed by module layout"""
    return {
        "default_first": list(SERVER_OUTPUT_DEFAULT_MODULE_FIRST),
        "default_second": list(SERVER_OUTPUT_DEFAULT_MODULE_SECOND),
        "no_default": list(SERVER_OUTPUT_NO_DEFAULT_MODULE),
    }
