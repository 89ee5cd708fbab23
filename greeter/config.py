"""
Configuration settings for the Greeter server and client
"""
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GreeterConfig:
    """Main configuration for the Greeter demo server and client"""
    server_address: str = "localhost:8080"
    bind_address: str = "[::]:8080"
    use_uds: bool = False
    max_workers: int = 10
    timeout_ms: int = 5000

    # Call shape
    stream_count: int = 10  # Replies per server stream, requests per client stream
    name: str = "duty"

    # Tracing configuration
    enable_tracing: bool = False
    otlp_endpoint: str = "localhost:4317"
    service_name: str = "greeter"

    @classmethod
    def from_env(cls) -> "GreeterConfig":
        """Create config from GREETER_* environment variables"""
        defaults = cls()
        return cls(
            server_address=os.getenv("GREETER_SERVER_ADDRESS", defaults.server_address),
            bind_address=os.getenv("GREETER_BIND_ADDRESS", defaults.bind_address),
            use_uds=_env_bool("GREETER_USE_UDS", defaults.use_uds),
            max_workers=int(os.getenv("GREETER_MAX_WORKERS", defaults.max_workers)),
            timeout_ms=int(os.getenv("GREETER_TIMEOUT_MS", defaults.timeout_ms)),
            stream_count=int(os.getenv("GREETER_STREAM_COUNT", defaults.stream_count)),
            name=os.getenv("GREETER_NAME", defaults.name),
            enable_tracing=_env_bool("GREETER_ENABLE_TRACING", defaults.enable_tracing),
            otlp_endpoint=os.getenv("GREETER_OTLP_ENDPOINT", defaults.otlp_endpoint),
            service_name=os.getenv("GREETER_SERVICE_NAME", defaults.service_name),
        )

    def client_config(self) -> Dict[str, Any]:
        """Adapter configuration for AdapterFactory.create_client"""
        return {
            "server_address": self.server_address,
            "timeout_ms": self.timeout_ms,
            "use_uds": self.use_uds,
        }

    def server_config(self) -> Dict[str, Any]:
        """Adapter configuration for AdapterFactory.create_server"""
        return {
            "bind_address": self.bind_address,
            "max_workers": self.max_workers,
            "use_uds": self.use_uds,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return asdict(self)
