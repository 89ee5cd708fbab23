#!/usr/bin/env python
"""
Greeter demo

Runs the Greeter service over gRPC, or a client driving one or all of its
call patterns against it:

    python -m greeter.demo server
    python -m greeter.demo client --pattern all
"""

import argparse
import logging
import sys
import threading
from typing import Dict, List, Optional

from greeter.adapters.adapter_factory import AdapterFactory, AdapterType
from greeter.config import GreeterConfig
from greeter.core.drivers import GreeterClient
from greeter.core.errors import CallError
from greeter.core.handlers import Greeter
from greeter.core.messages import Reply
from greeter.core.patterns import Pattern
from greeter.core.registry import HandlerRegistry
from greeter.telemetry import setup_metrics, setup_tracer

logger = logging.getLogger(__name__)

ALL_PATTERNS = "all"


def build_registry(config: GreeterConfig) -> HandlerRegistry:
    """Registry with the Greeter servicer bound to every method"""
    registry = HandlerRegistry()
    registry.register_servicer(Greeter(count=config.stream_count, default_name=config.name))
    return registry


def setup_telemetry(config: GreeterConfig) -> None:
    if not config.enable_tracing:
        return
    setup_tracer(config.service_name, config.otlp_endpoint)
    setup_metrics(config.service_name, config.otlp_endpoint)


def run_server(config: GreeterConfig, stop_event: Optional[threading.Event] = None) -> None:
    """Serve the Greeter over gRPC until interrupted or ``stop_event`` is set"""
    server = AdapterFactory.create_server(AdapterType.GRPC, build_registry(config), config.server_config())
    server.start()
    logger.info(f"Greeter server listening on: {config.bind_address}")

    try:
        if stop_event is None:
            server.wait_for_termination()
        else:
            stop_event.wait()
    except KeyboardInterrupt:
        logger.info("Received interrupt, stopping server...")
    finally:
        server.stop()
        logger.info("Server stopped")


def run_client(config: GreeterConfig, pattern: str = ALL_PATTERNS) -> Dict[str, List[Reply]]:
    """Drive one or all Greeter patterns against a gRPC server

    Args:
        config: Client configuration
        pattern: A Pattern value, or "all"

    Returns:
        Dict[str, List[Reply]]: Replies observed, keyed by pattern value

    Raises:
        TransportError: The server is unreachable
        CallError: A call failed
    """
    if pattern == ALL_PATTERNS:
        patterns = list(Pattern)
    else:
        patterns = [Pattern(pattern)]

    adapter = AdapterFactory.create_client(AdapterType.GRPC, config.client_config())
    try:
        adapter.connect()
        client = GreeterClient(adapter, name=config.name, count=config.stream_count)

        results: Dict[str, List[Reply]] = {}
        for current in patterns:
            logger.info(f"Running {current.value} call")
            if current is Pattern.UNARY:
                results[current.value] = [client.say_hello()]
            elif current is Pattern.SERVER_STREAM:
                results[current.value] = client.say_hello_again()
            elif current is Pattern.CLIENT_STREAM:
                results[current.value] = [client.say_hello_stream()]
            else:
                results[current.value] = client.say_hello_stream_all()
        return results
    finally:
        adapter.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Greeter streaming RPC demo")
    parser.add_argument("mode", choices=["server", "client"], help="Run mode")
    parser.add_argument("--pattern", default=ALL_PATTERNS,
                        choices=[p.value for p in Pattern] + [ALL_PATTERNS],
                        help="Call pattern to drive (client mode)")
    parser.add_argument("--address", help="Server address (client) or bind address (server) override")
    parser.add_argument("--name", help="Name to greet")
    parser.add_argument("--count", type=int, help="Stream length")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = GreeterConfig.from_env()
    if args.address:
        if args.mode == "server":
            config.bind_address = args.address
        else:
            config.server_address = args.address
    if args.name:
        config.name = args.name
    if args.count is not None:
        config.stream_count = args.count

    setup_telemetry(config)

    if args.mode == "server":
        run_server(config)
        return 0

    try:
        run_client(config, args.pattern)
    except CallError as e:
        logger.error(f"Client failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
