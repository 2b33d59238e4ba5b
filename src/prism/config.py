import os
from dataclasses import dataclass

# Cloud Monitoring only reports request counts; the dashboard shows
# requests multiplied by this factor as a rough token estimate
DEFAULT_GEMINI_TOKEN_SCALE = 1000


@dataclass
class Config:
    # listen_address: format ":8000" or
    # "0.0.0.0:8000"
    listen_address: "str" = ":8000"
    log_level: "str" = "info"
    # timeout in seconds for outbound provider calls
    http_timeout: "float" = 10.0

    gemini_token_scale: "int" = DEFAULT_GEMINI_TOKEN_SCALE

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            listen_address=os.environ.get("PRISM_LISTEN_ADDRESS", ":8000"),
            http_timeout=float(os.environ.get("PRISM_HTTP_TIMEOUT", "10")),
            gemini_token_scale=int(
                os.environ.get(
                    "PRISM_GEMINI_TOKEN_SCALE", str(DEFAULT_GEMINI_TOKEN_SCALE)
                )
            ),
        )
