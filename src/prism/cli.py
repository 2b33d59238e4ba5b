import argparse

from prism.config import Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="prism",
        description="AI provider usage dashboard backend",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=None,
        help="Address to listen on (default: :8000)",
    )
    parser.add_argument(
        "--http.timeout",
        dest="http_timeout",
        type=float,
        default=None,
        help="Timeout in seconds for provider API calls (default: 10)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    # flags win over environment variables when given
    if args.listen_address is not None:
        config.listen_address = args.listen_address
    if args.http_timeout is not None:
        config.http_timeout = args.http_timeout
    config.log_level = args.log_level
    return config
