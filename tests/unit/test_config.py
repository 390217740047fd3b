"""
Unit tests for configuration models and dev server arguments
"""

import json

import pytest
import yaml
from pydantic import ValidationError

from devsrv.config.models import DEFAULT_ADMIN_PORT, DEFAULT_SERVER_PORT, ServerConfig, SessionConfig
from devsrv.config.validation import get_dev_server_args, get_jvm_flags, validate_config, validate_debug_port
from devsrv.exceptions import InvalidPort


class TestServerConfig:
    """Tests for ServerConfig defaults and validators"""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "localhost"
        assert config.port == DEFAULT_SERVER_PORT
        assert config.admin_port == DEFAULT_ADMIN_PORT
        assert config.admin_port_fallback == "fail"
        assert config.failover_admin_port_bound is False
        assert config.automatic_restart is False
        assert config.jvm_flags == ["-Dappengine.user.timezone=UTC"]

    def test_out_of_range_port_accepted_by_model(self):
        # Rejected at negotiation time with the launch error message
        assert ServerConfig(port=70000).port == 70000

    @pytest.mark.parametrize("kwargs", [
        {"command": []},
        {"max_module_instances": 0},
        {"shutdown_timeout": 0},
        {"admin_port_fallback": "sometimes"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            ServerConfig(**kwargs)


class TestSessionConfig:
    """Tests for loading and saving session files"""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "session.yaml"
        path.write_text(yaml.dump({
            "server": {"port": 0, "admin_port_fallback": "auto", "app_dirs": ["app"]},
            "info_file": "session.json",
        }))

        config = SessionConfig.from_file(str(path))

        assert config.server.port == 0
        assert config.server.admin_port_fallback == "auto"
        assert config.server.app_dirs == ["app"]
        assert config.info_file == "session.json"

    def test_empty_yaml_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")

        config = SessionConfig.from_file(str(path))

        assert config.server.port == DEFAULT_SERVER_PORT

    def test_json_round_trip(self, tmp_path):
        path = tmp_path / "session.json"
        original = SessionConfig(server=ServerConfig(port=9090, debug_port=5005), log_level="DEBUG")

        original.to_json(str(path))
        loaded = SessionConfig.from_file(str(path))

        assert loaded.server.port == 9090
        assert loaded.server.debug_port == 5005
        assert loaded.log_level == "DEBUG"
        assert json.loads(path.read_text())["server"]["admin_port"] == DEFAULT_ADMIN_PORT


class TestValidateConfig:
    """Tests for configuration warnings"""

    def test_valid_python_app(self, tmp_path):
        (tmp_path / "app.yaml").write_text("runtime: python27\n")
        config = SessionConfig(server=ServerConfig(app_dirs=[str(tmp_path)]))

        assert validate_config(config) == []

    def test_valid_java_app(self, tmp_path):
        (tmp_path / "WEB-INF").mkdir()
        (tmp_path / "WEB-INF" / "appengine-web.xml").write_text("<appengine-web-app/>")
        config = SessionConfig(server=ServerConfig(app_dirs=[str(tmp_path)]))

        assert validate_config(config) == []

    def test_missing_app_dirs(self, tmp_path):
        warnings = validate_config(SessionConfig())
        assert any("No app_dirs" in w for w in warnings)

        missing = tmp_path / "missing"
        warnings = validate_config(SessionConfig(server=ServerConfig(app_dirs=[str(missing)])))
        assert any("does not exist" in w for w in warnings)

    def test_app_dir_without_descriptor(self, tmp_path):
        warnings = validate_config(SessionConfig(server=ServerConfig(app_dirs=[str(tmp_path)])))

        assert any("No app.yaml" in w for w in warnings)

    def test_port_warnings(self, tmp_path):
        (tmp_path / "app.yaml").write_text("")
        server = ServerConfig(
            app_dirs=[str(tmp_path)],
            port=8000,
            admin_port=8000,
            debug_port=70000,
            admin_port_fallback="auto",
            failover_admin_port_bound=True,
        )

        warnings = validate_config(SessionConfig(server=server))

        assert "Service port and admin port are both 8000" in warnings
        assert "Debug port 70000 should be between 1-65535" in warnings
        assert any("failover_admin_port_bound" in w for w in warnings)

    def test_out_of_range_and_privileged_ports(self, tmp_path):
        (tmp_path / "app.yaml").write_text("")

        out_of_range = validate_config(SessionConfig(server=ServerConfig(app_dirs=[str(tmp_path)], port=-1)))
        privileged = validate_config(SessionConfig(server=ServerConfig(app_dirs=[str(tmp_path)], port=80)))

        assert any("outside 0-65535" in w for w in out_of_range)
        assert any("privileged" in w for w in privileged)


class TestDevServerArgs:
    """Tests for the dev server command line"""

    def test_basic_args(self):
        config = ServerConfig(app_dirs=["/srv/app"])

        args = get_dev_server_args(config, 0, 8000)

        assert args == [
            "--host=localhost",
            "--port=0",
            "--admin_port=8000",
            "--automatic_restart=no",
            "--jvm_flag=-Dappengine.user.timezone=UTC",
            "/srv/app",
        ]

    def test_max_module_instances(self):
        config = ServerConfig(max_module_instances=3, automatic_restart=True)

        args = get_dev_server_args(config, 8080, 8000)

        assert "--max_module_instances=3" in args
        assert "--automatic_restart=yes" in args

    def test_debug_mode(self):
        config = ServerConfig(debug_port=5005, max_module_instances=4)

        args = get_dev_server_args(config, 8080, 8000)

        assert "--max_module_instances=1" in args
        assert "--jvm_flag=-Xdebug" in args
        assert (
            "--jvm_flag=-Xrunjdwp:transport=dt_socket,server=n,suspend=y,quiet=y,address=5005"
            in args
        )

    def test_jvm_flags_without_debug(self):
        assert get_jvm_flags(ServerConfig(jvm_flags=[])) == []

    @pytest.mark.parametrize("port", [0, -5, 65536])
    def test_invalid_debug_port(self, port):
        with pytest.raises(InvalidPort) as exc_info:
            validate_debug_port(port)

        assert str(exc_info.value) == f"Debug port is set to {port}, should be between 1-65535"

    def test_invalid_debug_port_rejected_when_building_args(self):
        with pytest.raises(InvalidPort):
            get_dev_server_args(ServerConfig(debug_port=0), 8080, 8000)
