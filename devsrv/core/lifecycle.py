"""Dev server lifecycle state machine

Three kinds of triggers move the server between states: explicit `start` and
`stop` calls, events parsed from the dev server output, and the process exit
callback. They can arrive from different tasks or threads, so every read and
write of the state, the ports and the process handle goes through one lock.
Side effects (killing, HTTP shutdown requests, listener callbacks) run after
the lock is released.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..config.models import ServerConfig
from ..exceptions import InvalidStateError, ShutdownError
from ..utils.system import get_process_info
from .negotiator import NegotiatedPorts, PortNegotiator
from .output import OutputEventParser, PortDiscovered, PortRole, ServerStarted, ServerStopped
from .server import DevServerLauncher, DevServerProcess, LaunchRequest

logger = logging.getLogger(__name__)

class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"

@dataclass(frozen=True)
class StateChange:
    previous: ServerState
    current: ServerState
    reason: str
    exit_code: Optional[int] = None

    @property
    def crashed(self) -> bool:
        return self.reason == "crashed"

StateListener = Callable[[StateChange], None]
PortListener = Callable[[PortDiscovered], None]

class ServerLifecycle:
    """Owns the dev server process and its externally visible state"""

    def __init__(
        self,
        config: ServerConfig,
        launcher: Optional[DevServerLauncher] = None,
        negotiator: Optional[PortNegotiator] = None,
        sink: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self.launcher = launcher or DevServerLauncher(config)
        self.negotiator = negotiator or PortNegotiator(admin_port_fallback=config.admin_port_fallback)
        self.sink = sink

        self._lock = threading.Lock()
        self._state = ServerState.STOPPED
        self._service_port = -1
        self._admin_port = config.admin_port
        self._process: Optional[DevServerProcess] = None
        self._parser: Optional[OutputEventParser] = None
        self._generation = 0
        self._pending_stop: Optional[bool] = None

        self._listeners: List[StateListener] = []
        self._port_listeners: List[PortListener] = []

    # Observers

    def add_listener(self, listener: StateListener):
        self._listeners.append(listener)

    def add_port_listener(self, listener: PortListener):
        self._port_listeners.append(listener)

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    @property
    def server_port(self) -> int:
        """Service port; -1 until the first launch attempt, 0 while undiscovered"""
        with self._lock:
            return self._service_port

    @property
    def admin_port(self) -> int:
        with self._lock:
            return self._admin_port

    @property
    def process(self) -> Optional[DevServerProcess]:
        with self._lock:
            return self._process

    def can_stop(self) -> Tuple[bool, str]:
        state = self.state
        if state in (ServerState.STOPPING, ServerState.STOPPED):
            return False, "Stop in progress"
        return True, "OK"

    def get_server_info(self) -> Dict[str, Any]:
        """Get server information"""
        with self._lock:
            process = self._process
            info = {
                "state": self._state.value,
                "host": self.config.host,
                "service_port": self._service_port,
                "admin_port": self._admin_port,
                "pid": process.pid if process else None,
                "is_running": process is not None and process.is_running,
            }
        if process is not None and process.is_running:
            info["process"] = get_process_info(process.pid)
        return info

    # Commands

    async def start(self, app_dirs: Optional[Iterable[str]] = None) -> NegotiatedPorts:
        """Negotiate ports and launch the dev server

        Negotiation and spawn failures are raised here and leave the server
        STOPPED. Returns the ports passed to the dev server; zeros are filled
        in later from its output.
        """
        dirs = list(app_dirs) if app_dirs is not None else list(self.config.app_dirs)

        with self._lock:
            if self._state is not ServerState.STOPPED:
                raise InvalidStateError(f"Cannot start server while {self._state.value}")
            # Must run before entering STARTING so a failure leaves us STOPPED
            ports = self.negotiator.resolve(
                self.config.port,
                self.config.admin_port,
                self.config.failover_admin_port_bound,
            )
            self._service_port = ports.service_port
            self._admin_port = ports.admin_port
            self._generation += 1
            generation = self._generation
            self._parser = OutputEventParser(ports.service_port, ports.admin_port)
            self._pending_stop = None
            change = self._set_state(ServerState.STARTING, "start")
        self._notify([change])

        request = LaunchRequest(
            service_port=ports.service_port,
            admin_port=ports.admin_port,
            host=self.config.host,
            app_dirs=dirs,
        )
        try:
            await self.launcher.launch(
                request,
                on_start=lambda process: self._on_process_start(generation, process),
                on_line=lambda line: self._on_output_line(generation, line),
                on_exit=lambda code: self._on_process_exit(generation, code),
                sink=self.sink,
            )
        except Exception as e:
            logger.error(f"Failed to start dev server: {str(e)}")
            changes = []
            with self._lock:
                if generation == self._generation and self._state is not ServerState.STOPPED:
                    self._process = None
                    self._pending_stop = None
                    changes.append(self._set_state(ServerState.STOPPED, "launch_failed"))
            self._notify(changes)
            raise

        with self._lock:
            pending = self._pending_stop if generation == self._generation else None
            self._pending_stop = None
        if pending is not None:
            logger.info("Applying stop requested during launch")
            await self.stop(force=pending)

        return ports

    async def stop(self, force: bool = False):
        """Stop the dev server

        The first stop asks the dev server to quit through its admin port.
        A forced stop once a graceful one is in flight, or while still
        starting, kills the process tree. Stopping a stopped server is a no-op.
        """
        process: Optional[DevServerProcess] = None
        kill = False
        admin_port = 0
        changes = []

        with self._lock:
            state = self._state
            if state is ServerState.STOPPED:
                return
            if self._process is None:
                # Spawn still in flight: apply once the process exists
                self._pending_stop = bool(force or self._pending_stop)
                logger.info("Stop requested before the dev server process started")
                return
            if state is ServerState.STOPPING and not force:
                logger.debug("Graceful stop already in progress")
                return

            process = self._process
            admin_port = self._admin_port
            if state is ServerState.STOPPING or (force and state is ServerState.STARTING) or admin_port <= 0:
                kill = True
                self._process = None
                changes.append(self._set_state(ServerState.STOPPED, "killed"))
            else:
                changes.append(self._set_state(ServerState.STOPPING, "stop"))
        self._notify(changes)

        if kill:
            if admin_port <= 0 and state is not ServerState.STOPPING:
                logger.info("Admin port unknown; cannot request a graceful shutdown")
            await asyncio.to_thread(process.kill)
            return

        try:
            await asyncio.to_thread(self.launcher.request_shutdown, admin_port)
        except ShutdownError as e:
            logger.warning(str(e))

    async def wait_for_state(
        self,
        states: Iterable[ServerState],
        timeout: Optional[float] = None,
        check_interval: float = 0.1,
    ) -> ServerState:
        """Poll until the server reaches one of `states`"""
        wanted = set(states)
        start_time = time.time()
        while True:
            state = self.state
            if state in wanted:
                return state
            if timeout is not None and time.time() - start_time >= timeout:
                raise TimeoutError(f"Dev server did not reach {sorted(s.value for s in wanted)} within {timeout} seconds")
            await asyncio.sleep(check_interval)

    # Process callbacks

    def _on_process_start(self, generation: int, process: DevServerProcess):
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Ignoring start of stale process {process.pid}")
                return
            logger.debug(f"New process: {process.pid}")
            self._process = process

    def _on_output_line(self, generation: int, line: str):
        changes = []
        discovered = []

        with self._lock:
            if generation != self._generation or self._state is ServerState.STOPPED:
                return

            for event in self._parser.feed(line):
                if isinstance(event, PortDiscovered):
                    if event.role is PortRole.SERVICE:
                        self._service_port = event.port
                    else:
                        self._admin_port = event.port
                    logger.info(f"Discovered {event.role.value} port {event.port}")
                    discovered.append(event)
                elif isinstance(event, ServerStarted):
                    if self._state is ServerState.STARTING:
                        changes.append(self._set_state(ServerState.STARTED, "started"))
                elif isinstance(event, ServerStopped):
                    if self._state is not ServerState.STOPPED:
                        # The handle stays attached so the process can still be reaped or killed
                        logger.error("Dev server reported a fatal error")
                        changes.append(self._set_state(ServerState.STOPPED, "crashed"))

        for event in discovered:
            for listener in list(self._port_listeners):
                self._call_listener(listener, event)
        self._notify(changes)

    def _on_process_exit(self, generation: int, exit_code: int):
        changes = []
        with self._lock:
            if generation != self._generation or self._state is ServerState.STOPPED:
                return
            crashed = self._state is not ServerState.STOPPING and exit_code != 0
            self._process = None
            changes.append(self._set_state(
                ServerState.STOPPED,
                "crashed" if crashed else "exited",
                exit_code=exit_code,
            ))
        self._notify(changes)

    # Internals

    def _set_state(self, state: ServerState, reason: str, exit_code: Optional[int] = None) -> StateChange:
        """Record a transition; caller must hold the lock"""
        change = StateChange(self._state, state, reason, exit_code)
        self._state = state
        logger.info(f"Dev server {change.previous.value} -> {state.value} ({reason})")
        return change

    def _notify(self, changes: List[StateChange]):
        for change in changes:
            for listener in list(self._listeners):
                self._call_listener(listener, change)

    @staticmethod
    def _call_listener(listener: Callable, payload: Any):
        try:
            listener(payload)
        except Exception:
            logger.exception("Server listener failed")
