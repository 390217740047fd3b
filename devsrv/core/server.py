"""Dev server subprocess launch and control"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import requests

from ..config.models import ServerConfig
from ..config.validation import get_dev_server_args
from ..exceptions import LaunchError, ShutdownError
from ..utils.system import kill_process_tree

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]

# Longest output line handed to the parser
STREAM_LIMIT = 1024 * 1024

@dataclass(frozen=True)
class LaunchRequest:
    """Everything the dev server needs to know for one launch"""
    service_port: int
    admin_port: int
    host: str
    app_dirs: List[str] = field(default_factory=list)

class DevServerProcess:
    """Handle to a running dev server

    stdout and stderr are merged; dev_appserver logs to stderr. Every line is
    mirrored to the sink before being handed to `on_line`, then `on_exit`
    fires once with the exit code after the stream closes.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        on_line: LineCallback,
        on_exit: ExitCallback,
        sink: Optional[LineCallback] = None,
    ):
        self._process = process
        self._on_line = on_line
        self._on_exit = on_exit
        self._sink = sink
        self._reader: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None

    def start_reader(self):
        self._reader = asyncio.create_task(self._pump())

    async def _pump(self):
        stream = self._process.stdout
        try:
            while True:
                raw = await self._next_line(stream)
                if raw is None:
                    break
                self._dispatch(raw.decode('utf-8', errors='replace').rstrip('\r\n'))
        except Exception:
            logger.exception("Dev server output reader failed")

        exit_code = await self._process.wait()
        logger.debug(f"Process exit: code={exit_code}")
        self._on_exit(exit_code)

    async def _next_line(self, stream: asyncio.StreamReader) -> Optional[bytes]:
        """Next line of output, or None once the stream is closed

        Lines longer than the stream limit are dropped whole; a trailing line
        without a newline is returned as is.
        """
        overlong = False
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                if e.partial and not overlong:
                    return e.partial
                return None
            except asyncio.LimitOverrunError as e:
                # Discard what is buffered and keep reading to the end of the line
                await stream.read(e.consumed)
                overlong = True
                continue
            if not overlong:
                return raw
            logger.warning("Dropped a dev server output line longer than the stream limit")
            overlong = False

    def _dispatch(self, line: str):
        if self._sink:
            try:
                self._sink(line)
            except Exception:
                logger.exception("Error mirroring dev server output line")
        try:
            self._on_line(line)
        except Exception:
            logger.exception(f"Error handling dev server output line: {line}")

    async def wait(self) -> int:
        """Wait until the process has exited and its output is drained"""
        if self._reader:
            await self._reader
        return await self._process.wait()

    def kill(self):
        """Forcibly kill the dev server and everything it spawned"""
        if not self.is_running:
            return
        logger.info("forced stop: destroying associated processes")
        kill_process_tree(self.pid)

class DevServerLauncher:
    """Spawns dev_appserver and sends it shutdown requests"""

    def __init__(self, config: ServerConfig):
        self.config = config

    def build_command(self, request: LaunchRequest) -> List[str]:
        launch_config = self.config.model_copy(update={
            "host": request.host,
            "app_dirs": list(request.app_dirs),
        })
        args = get_dev_server_args(launch_config, request.service_port, request.admin_port)
        return list(self.config.command) + args

    async def launch(
        self,
        request: LaunchRequest,
        on_start: Callable[[DevServerProcess], None],
        on_line: LineCallback,
        on_exit: ExitCallback,
        sink: Optional[LineCallback] = None,
    ) -> DevServerProcess:
        """Start the dev server and begin streaming its output"""
        cmd = self.build_command(request)

        env = os.environ.copy()
        env.update(self.config.env)

        logger.info(f"Starting dev server with command: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise LaunchError(f"Error starting server: {str(e)}") from e

        logger.info(f"Dev server process created with PID {process.pid}")
        handle = DevServerProcess(process, on_line, on_exit, sink)
        on_start(handle)
        handle.start_reader()
        return handle

    def request_shutdown(self, admin_port: int):
        """Ask the dev server to quit through its admin server"""
        url = f"http://localhost:{admin_port}/quit"
        logger.info(f"Requesting dev server shutdown via {url}")
        try:
            response = requests.post(url, data="\n", timeout=self.config.shutdown_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ShutdownError(f"Error terminating server: {str(e)}") from e
