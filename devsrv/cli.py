"""CLI entry point for devsrv"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config.models import ServerConfig, SessionConfig
from .config.validation import validate_config
from .core.lifecycle import ServerLifecycle, ServerState, StateChange
from .core.negotiator import PortNegotiator
from .core.output import PortDiscovered
from .exceptions import DevServerError, PortError
from .output.console import ConsoleSink
from .output.json import JSONOutputFormatter, build_session_info, validate_output_schema
from .utils.ports import find_free_ports

console = Console()
logger = logging.getLogger(__name__)

def setup_logging(verbose: bool = False):
    """Setup rich logging"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )

def _load_config(config_path: Optional[str], **overrides) -> SessionConfig:
    """Load a session config file, then apply command-line overrides"""
    if config_path:
        console.print(f"[blue]Loading configuration from {config_path}[/blue]")
        config = SessionConfig.from_file(config_path)
    else:
        config = SessionConfig()

    server_updates = {key: value for key, value in overrides.items() if value is not None and key != "info_file"}
    if server_updates:
        config.server = config.server.model_copy(update=server_updates)
    if overrides.get("info_file"):
        config.info_file = overrides["info_file"]
    return config

@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def cli(verbose: bool):
    """devsrv - Local App Engine dev server manager"""
    setup_logging(verbose)

@cli.command()
@click.argument('app_dirs', nargs=-1)
@click.option('--config', '-c', 'config_path', help='Path to session configuration file')
@click.option('--port', '-p', type=int, help='Service port (0 lets the server choose)')
@click.option('--admin-port', type=int, help='Preferred admin port')
@click.option('--host', help='Host to bind')
@click.option('--debug-port', type=int, help='Attach a JDWP debugger on this port')
@click.option('--info-file', help='Keep a JSON file with the live ports and state')
@click.option('--dry-run', is_flag=True, help='Show the command without launching')
def start(app_dirs: Tuple[str, ...], config_path: Optional[str], port: Optional[int],
          admin_port: Optional[int], host: Optional[str], debug_port: Optional[int],
          info_file: Optional[str], dry_run: bool):
    """Start the dev server and follow its output"""
    try:
        config = _load_config(
            config_path,
            port=port,
            admin_port=admin_port,
            host=host,
            debug_port=debug_port,
            app_dirs=list(app_dirs) or None,
            info_file=info_file,
        )
    except Exception as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        sys.exit(1)

    exit_code = asyncio.run(_run_server(config, dry_run))
    sys.exit(exit_code)

async def _run_server(config: SessionConfig, dry_run: bool) -> int:
    """Run the dev server until it stops"""
    for warning in validate_config(config):
        console.print(f"[yellow]Warning: {warning}[/yellow]")

    lifecycle = ServerLifecycle(config.server, sink=ConsoleSink(console))

    if dry_run:
        from .core.server import LaunchRequest
        try:
            ports = lifecycle.negotiator.resolve(
                config.server.port, config.server.admin_port, config.server.failover_admin_port_bound
            )
            request = LaunchRequest(ports.service_port, ports.admin_port, config.server.host, config.server.app_dirs)
            command = lifecycle.launcher.build_command(request)
        except DevServerError as e:
            console.print(f"[red]Error: {str(e)}[/red]")
            return 1
        console.print("[yellow]Dry run mode - command only[/yellow]")
        console.print(' '.join(command), markup=False)
        return 0

    outcome = {"crashed": False}

    def on_change(change: StateChange):
        if change.current is ServerState.STARTED:
            console.print("[green]✓ Dev server started[/green]")
            _display_server_info(lifecycle)
        elif change.current is ServerState.STOPPED:
            outcome["crashed"] = change.crashed or change.reason == "launch_failed"
            if change.crashed:
                console.print(f"[red]✗ Dev server crashed (exit code: {change.exit_code})[/red]")
            else:
                console.print("[green]✓ Server stopped[/green]")

    def on_port(event: PortDiscovered):
        console.print(f"[green]Discovered {event.role.value} port: {event.port}[/green]")

    lifecycle.add_listener(on_change)
    lifecycle.add_port_listener(on_port)

    if config.info_file:
        def write_info(_event):
            JSONOutputFormatter.save_to_file(build_session_info(lifecycle.get_server_info()), config.info_file)
        lifecycle.add_listener(write_info)
        lifecycle.add_port_listener(write_info)

    try:
        await lifecycle.start()
    except PortError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        return 1
    except DevServerError as e:
        console.print(f"[red]Failed to start dev server: {str(e)}[/red]")
        return 1

    console.print("[yellow]Press Ctrl+C to stop the server (twice to force)[/yellow]")
    _install_interrupt_handler(lifecycle)

    try:
        await lifecycle.wait_for_state([ServerState.STOPPED])
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Stopping server...[/yellow]")
        await lifecycle.stop(force=True)

    process = lifecycle.process
    if process is not None:
        await _reap(process)

    return 1 if outcome["crashed"] else 0

async def _reap(process):
    """Wait for the dev server to exit, killing it if it outlived its stopped state"""
    if process.is_running:
        logger.warning(f"Dev server process {process.pid} still running after stop; killing it")
        await asyncio.to_thread(process.kill)
    return await process.wait()

def _install_interrupt_handler(lifecycle: ServerLifecycle):
    """First Ctrl+C stops gracefully, the next one kills"""
    loop = asyncio.get_running_loop()
    presses = {"count": 0}
    tasks = set()

    def on_interrupt():
        presses["count"] += 1
        force = presses["count"] > 1
        console.print("\n[yellow]Forcing server stop...[/yellow]" if force else "\n[yellow]Stopping server...[/yellow]")
        task = loop.create_task(lifecycle.stop(force=force))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; KeyboardInterrupt applies
        logger.debug("Signal handlers not supported on this event loop")

def _display_server_info(lifecycle: ServerLifecycle):
    """Display the live server ports"""
    info = lifecycle.get_server_info()

    table = Table(title="Dev Server")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("State", info["state"])
    table.add_row("URL", f"http://{info['host']}:{info['service_port']}")
    table.add_row("Admin URL", f"http://{info['host']}:{info['admin_port']}")
    table.add_row("PID", str(info["pid"]))

    console.print(table)

@cli.command('check-ports')
@click.option('--port', '-p', type=int, default=None, help='Service port to request')
@click.option('--admin-port', type=int, default=None, help='Preferred admin port')
@click.option('--config', '-c', 'config_path', help='Path to session configuration file')
def check_ports(port: Optional[int], admin_port: Optional[int], config_path: Optional[str]):
    """Negotiate ports without launching anything"""
    try:
        config = _load_config(config_path, port=port, admin_port=admin_port)
        server = config.server
        negotiator = PortNegotiator(admin_port_fallback=server.admin_port_fallback)
        ports = negotiator.resolve(server.port, server.admin_port, server.failover_admin_port_bound)
    except PortError as e:
        console.print(f"[red]✗ {str(e)}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        sys.exit(1)

    table = Table(title="Port Negotiation")
    table.add_column("Role", style="cyan")
    table.add_column("Port", style="white")

    table.add_row("Service", str(ports.service_port) if ports.service_port else "auto (discovered at launch)")
    table.add_row("Admin", str(ports.admin_port) if ports.admin_port else "auto (discovered at launch)")

    console.print(table)

@cli.command('free-ports')
@click.argument('count', type=int)
def free_ports(count: int):
    """Print COUNT currently free ephemeral ports"""
    ports = find_free_ports(count)
    if not ports:
        console.print(f"[red]✗ Could not allocate {count} free ports[/red]")
        sys.exit(1)
    for port in ports:
        console.print(str(port))

@cli.command()
@click.argument('config_file')
def validate(config_file: str):
    """Validate session configuration"""
    try:
        config = SessionConfig.from_file(config_file)
        warnings = validate_config(config)

        if warnings:
            console.print("[yellow]Configuration warnings:[/yellow]")
            for warning in warnings:
                console.print(f"  • {warning}")
        else:
            console.print("[green]✓ Configuration is valid[/green]")

    except Exception as e:
        console.print(f"[red]Configuration validation failed: {str(e)}[/red]")
        sys.exit(1)

@cli.command()
@click.argument('info_file')
def status(info_file: str):
    """Show the ports and state recorded in a session info file"""
    try:
        info = JSONOutputFormatter.load_from_file(info_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read session info: {str(e)}[/red]")
        sys.exit(1)

    if not validate_output_schema(info):
        console.print(f"[red]✗ {info_file} is not a devsrv session info file[/red]")
        sys.exit(1)

    table = Table(title="Dev Server Session")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("State", info["state"])
    table.add_row("URL", f"http://{info['host']}:{info['service_port']}")
    table.add_row("Admin URL", f"http://{info['host']}:{info['admin_port']}")
    table.add_row("PID", str(info["pid"]))
    table.add_row("Updated", info["updated_at"])

    console.print(table)

@cli.command()
@click.argument('config_file')
@click.option('--port', '-p', type=int, help='Service port (0 lets the server choose)')
@click.argument('app_dirs', nargs=-1)
def init(config_file: str, port: Optional[int], app_dirs: Tuple[str, ...]):
    """Write a session configuration file with default settings"""
    if Path(config_file).exists():
        console.print(f"[red]✗ {config_file} already exists[/red]")
        sys.exit(1)

    server = ServerConfig(app_dirs=list(app_dirs))
    if port is not None:
        server = server.model_copy(update={"port": port})
    SessionConfig(server=server).to_file(config_file)
    console.print(f"[green]✓ Wrote {config_file}[/green]")

def main():
    """Main entry point"""
    cli()

if __name__ == '__main__':
    main()
