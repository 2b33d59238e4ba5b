import structlog
import uvicorn

from prism.api import create_app
from prism.cli import parse_args
from prism.logging import setup_logging

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':8000' or '0.0.0.0:8000'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level)

    host, port = _parse_listen_address(config.listen_address)
    app = create_app(config)
    logger.info("http_server_starting", host=host, port=port)

    # uvicorn handles SIGINT/SIGTERM and runs the app lifespan,
    # which closes the provider clients on shutdown
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
