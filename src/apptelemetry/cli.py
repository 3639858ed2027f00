"""Command line entry point: run the forecast service under uvicorn."""

import argparse
import sys

import uvicorn

from apptelemetry.adapters.logging import configure_logging
from apptelemetry.config import load_config
from apptelemetry.coordinator import init_telemetry, shutdown_telemetry
from apptelemetry.core.exceptions import ConfigurationError
from apptelemetry.service.app import create_app

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def main(argv: list[str] | None = None) -> int:
    """Run the service until interrupted.

    Returns:
        0 after a graceful shutdown and final flush, 2 if the configuration
        is invalid.
    """
    parser = argparse.ArgumentParser(
        prog="apptelemetry-service",
        description="Sample weather forecast service with OTLP telemetry.",
    )
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args(argv)

    try:
        config = load_config()
        telemetry = init_telemetry(config)
    except ConfigurationError as exc:
        print(f"apptelemetry: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(config.service_name, config.log_level, telemetry.logs)
    try:
        uvicorn.run(
            create_app(coordinator=telemetry),
            host=args.host,
            port=args.port,
            log_config=None,
        )
    finally:
        shutdown_telemetry()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
