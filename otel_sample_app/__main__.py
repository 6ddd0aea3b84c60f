import sys

import uvicorn

from otel_sample_app.config import Config, ConfigurationError
from otel_sample_app.server import create_app
from otel_sample_app.telemetry import configure_logging, start_client


def main() -> int:
    try:
        cfg = Config.from_env()
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    configure_logging(cfg.log_level)
    shutdown = start_client(cfg)
    try:
        uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_config=None)
    finally:
        shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
