# Configuration models
from typing import Optional, Dict, List, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
import json

DEFAULT_SERVER_PORT = 8080
DEFAULT_ADMIN_PORT = 8000

class ServerConfig(BaseModel):
    """Configuration for the local dev server launch"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # Network
    host: str = "localhost"
    # Not range-checked here: PortNegotiator reports out-of-range ports itself
    port: int = Field(default=DEFAULT_SERVER_PORT, description="Requested service port, 0 lets the server choose")
    admin_port: int = Field(default=DEFAULT_ADMIN_PORT, description="Preferred admin port")

    # Admin port failover
    failover_admin_port_bound: bool = False  # a previous session already ran on a failover admin port
    admin_port_fallback: Literal["fail", "auto"] = "fail"

    # Application
    app_dirs: List[str] = Field(default_factory=list, description="Directories holding app.yaml or appengine-web.xml")

    # Dev server process
    command: List[str] = Field(default_factory=lambda: ["dev_appserver.py"])
    automatic_restart: bool = False
    jvm_flags: List[str] = Field(default_factory=lambda: ["-Dappengine.user.timezone=UTC"])
    max_module_instances: Optional[int] = None
    debug_port: Optional[int] = None
    env: Dict[str, str] = Field(default_factory=dict)

    # Shutdown
    shutdown_timeout: float = 10.0

    @field_validator('command')
    @classmethod
    def validate_command(cls, v):
        if not v:
            raise ValueError('command must not be empty')
        return v

    @field_validator('max_module_instances')
    @classmethod
    def validate_max_module_instances(cls, v):
        if v is not None and v < 1:
            raise ValueError('max_module_instances must be at least 1')
        return v

    @field_validator('shutdown_timeout')
    @classmethod
    def validate_shutdown_timeout(cls, v):
        if v <= 0:
            raise ValueError('shutdown_timeout must be positive')
        return v

class SessionConfig(BaseModel):
    """Complete dev server session configuration"""

    server: ServerConfig = Field(default_factory=ServerConfig)

    # Output configuration
    info_file: Optional[str] = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @classmethod
    def from_yaml(cls, path: str) -> 'SessionConfig':
        """Load configuration from YAML file"""
        import yaml
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_json(cls, path: str) -> 'SessionConfig':
        """Load configuration from JSON file"""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def from_file(cls, path: str) -> 'SessionConfig':
        if path.endswith('.yaml') or path.endswith('.yml'):
            return cls.from_yaml(path)
        return cls.from_json(path)

    def to_file(self, path: str):
        if path.endswith('.yaml') or path.endswith('.yml'):
            self.to_yaml(path)
        else:
            self.to_json(path)

    def to_yaml(self, path: str):
        """Save configuration to YAML file"""
        import yaml
        with open(path, 'w') as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)

    def to_json(self, path: str):
        """Save configuration to JSON file"""
        with open(path, 'w') as f:
            json.dump(self.model_dump(), f, indent=2)
