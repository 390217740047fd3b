# Configuration validation
"""Configuration validation utilities"""

from pathlib import Path
from typing import List

from ..config.models import SessionConfig, ServerConfig
from ..exceptions import InvalidPort

def validate_config(config: SessionConfig) -> List[str]:
    """Validate session configuration and return list of warnings"""
    warnings = []
    server = config.server

    # Launch inputs
    if not server.app_dirs:
        warnings.append("No app_dirs configured; the dev server needs at least one application directory")

    for app_dir in server.app_dirs:
        path = Path(app_dir)
        if not path.is_dir():
            warnings.append(f"App directory does not exist: {app_dir}")
        elif not (path / "app.yaml").exists() and not (path / "WEB-INF" / "appengine-web.xml").exists():
            warnings.append(f"No app.yaml or WEB-INF/appengine-web.xml found in {app_dir}")

    # Port sanity
    if not 0 <= server.port <= 65535:
        warnings.append(f"Service port {server.port} is outside 0-65535 and will be rejected at launch")
    elif 0 < server.port < 1024:
        warnings.append(f"Service port {server.port} is privileged and may require elevated permissions")

    if not 0 <= server.admin_port <= 65535:
        warnings.append(f"Admin port {server.admin_port} is outside 0-65535")

    if server.port != 0 and server.port == server.admin_port:
        warnings.append(f"Service port and admin port are both {server.port}")

    if server.debug_port is not None:
        if not 1 <= server.debug_port <= 65535:
            warnings.append(f"Debug port {server.debug_port} should be between 1-65535")
        elif server.debug_port in (server.port, server.admin_port):
            warnings.append(f"Debug port {server.debug_port} collides with a server port")

    # Failover policy
    if server.admin_port_fallback == "auto" and server.failover_admin_port_bound:
        warnings.append("failover_admin_port_bound has no effect with admin_port_fallback 'auto'")

    return warnings

def validate_debug_port(debug_port: int):
    """Reject debug ports the JVM cannot attach to"""
    if debug_port <= 0 or debug_port > 65535:
        raise InvalidPort(
            debug_port,
            f"Debug port is set to {debug_port}, should be between 1-65535",
        )

def get_jvm_flags(config: ServerConfig) -> List[str]:
    """JVM flags for the dev server, including debug agent flags in debug mode"""
    flags = list(config.jvm_flags)
    if config.debug_port is not None:
        validate_debug_port(config.debug_port)
        flags.append("-Xdebug")
        flags.append(
            "-Xrunjdwp:transport=dt_socket,server=n,suspend=y,quiet=y,address="
            f"{config.debug_port}"
        )
    return flags

def get_dev_server_args(config: ServerConfig, service_port: int, admin_port: int) -> List[str]:
    """Convert ServerConfig and negotiated ports to dev server arguments"""
    args = [
        f"--host={config.host}",
        f"--port={service_port}",
        f"--admin_port={admin_port}",
        f"--automatic_restart={'yes' if config.automatic_restart else 'no'}",
    ]

    max_module_instances = config.max_module_instances
    # Debugging is simpler with a single instance per module
    if config.debug_port is not None:
        max_module_instances = 1
    if max_module_instances is not None:
        args.append(f"--max_module_instances={max_module_instances}")

    for flag in get_jvm_flags(config):
        args.append(f"--jvm_flag={flag}")

    args.extend(str(Path(app_dir)) for app_dir in config.app_dirs)
    return args
