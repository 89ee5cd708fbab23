"""
Tests for Greeter configuration
"""
import os
from unittest.mock import patch

from greeter.config import GreeterConfig


class TestGreeterConfig:
    """Defaults, environment overrides and adapter dictionaries"""

    def test_defaults(self):
        config = GreeterConfig()

        assert config.server_address == "localhost:8080"
        assert config.bind_address == "[::]:8080"
        assert config.stream_count == 10
        assert config.name == "duty"
        assert config.enable_tracing is False

    def test_from_env(self):
        with patch.dict(os.environ, {
            "GREETER_SERVER_ADDRESS": "greeter.internal:9090",
            "GREETER_TIMEOUT_MS": "250",
            "GREETER_STREAM_COUNT": "3",
            "GREETER_NAME": "world",
            "GREETER_USE_UDS": "true",
            "GREETER_ENABLE_TRACING": "0",
        }):
            config = GreeterConfig.from_env()

        assert config.server_address == "greeter.internal:9090"
        assert config.timeout_ms == 250
        assert config.stream_count == 3
        assert config.name == "world"
        assert config.use_uds is True
        assert config.enable_tracing is False
        assert config.max_workers == 10

    def test_adapter_dictionaries(self):
        config = GreeterConfig(server_address="a:1", bind_address="b:2", max_workers=4, timeout_ms=100)

        assert config.client_config() == {"server_address": "a:1", "timeout_ms": 100, "use_uds": False}
        assert config.server_config() == {"bind_address": "b:2", "max_workers": 4, "use_uds": False}

    def test_to_dict(self):
        data = GreeterConfig().to_dict()

        assert data["service_name"] == "greeter"
        assert data["otlp_endpoint"] == "localhost:4317"
        assert set(data) >= {"server_address", "stream_count", "name", "enable_tracing"}
