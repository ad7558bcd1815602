"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for TinyHTTP.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── tinyhttp --port 3000                                       │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TH_CFG_LISTEN_PORT=3000 tinyhttp                           │
    │                                                                      │
    │   3. Defaults (this dataclass)                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    TH_CFG_LISTEN_BACKLOG   accept queue length         16      1..128
    TH_CFG_LISTEN_PORT      TCP port                    8080    0..65535
    TH_CFG_LISTEN_HOST      bind address                0.0.0.0
    TH_CFG_RX_TIMEOUT       receive timeout (seconds)   1       1..65535
    TH_CFG_TX_TIMEOUT       send timeout (seconds)      1       1..65535
    TH_CFG_WEB_ROOT         directory to serve          public_html
    TH_CFG_NOTFOUND_ROUTE   route served on a miss      /404.html
    TH_CFG_WORKERS          warm worker threads         4       1..1024
    TH_CFG_LOG_LEVEL        DEBUG .. CRITICAL           INFO
    TH_CFG_LOG_FORMAT       text | json                 text
    TH_CFG_SANDBOX          1 = restrict after bind     1       0..1

Numeric variables are validated eagerly: anything that is not an integer
in range stops the server with INVALID_NUMERIC_ENV_VAR before it touches
the web root.
=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .diagnostics import LOG_LEVELS
from .errors import ConfigError


logger = logging.getLogger(__name__)

OS_MAX_BACKLOG = 128


def get_env_integer(default: int, name: str, minimum: int, maximum: int,
                    environ: Optional[Mapping[str, str]] = None) -> int:
    """
    Read an integer environment variable.

    Returns `default` when unset; raises ConfigError when the value is
    not an integer or is outside [minimum, maximum].
    """
    env = os.environ if environ is None else environ
    raw = env.get(name)
    if raw is None:
        return default

    try:
        value = int(raw.strip(), 10)
    except ValueError:
        raise ConfigError(f"Invalid {name}: {raw!r} is not an integer") from None

    if value < minimum:
        raise ConfigError(f"Invalid {name}: {value} is too small (minimum {minimum})")
    if value > maximum:
        raise ConfigError(f"Invalid {name}: {value} is too large (maximum {maximum})")
    return value


def get_env_str(name: str, default: str, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return env.get(name, default)


@dataclass
class ServerConfig:
    """
    Configuration for the TinyHTTP server.

    Development:
        ServerConfig(host="127.0.0.1", port=8080, web_root="./site",
                     log_level="DEBUG", sandbox=False)

    Production:
        ServerConfig.from_env()
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: int = 8080
    backlog: int = 16

    rx_timeout: float = 1.0
    """Seconds a client gets to send its request."""

    tx_timeout: float = 1.0
    """Seconds each send of the response may block."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    web_root: str = "public_html"
    notfound_route: str = "/404.html"

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Threads kept alive between bursts. More start on demand, without a cap."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"

    # ─────────────────────────────────────────────────────────────────────
    # SECURITY
    # ─────────────────────────────────────────────────────────────────────

    sandbox: bool = True
    """Restrict the process (rlimits, chdir) after binding the socket."""

    allow_root: bool = False
    """Permit starting as uid 0. Only for containers that drop caps otherwise."""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a configuration from TH_CFG_* environment variables.

        Raises:
            ConfigError: A numeric variable is malformed or out of range.
        """
        return cls(
            host=get_env_str("TH_CFG_LISTEN_HOST", "0.0.0.0", environ),
            port=get_env_integer(8080, "TH_CFG_LISTEN_PORT", 0, 65535, environ),
            backlog=get_env_integer(16, "TH_CFG_LISTEN_BACKLOG", 1, OS_MAX_BACKLOG, environ),
            rx_timeout=get_env_integer(1, "TH_CFG_RX_TIMEOUT", 1, 65535, environ),
            tx_timeout=get_env_integer(1, "TH_CFG_TX_TIMEOUT", 1, 65535, environ),
            web_root=get_env_str("TH_CFG_WEB_ROOT", "public_html", environ),
            notfound_route=get_env_str("TH_CFG_NOTFOUND_ROUTE", "/404.html", environ),
            min_workers=get_env_integer(4, "TH_CFG_WORKERS", 1, 1024, environ),
            log_level=get_env_str("TH_CFG_LOG_LEVEL", "INFO", environ).upper(),
            log_format=get_env_str("TH_CFG_LOG_FORMAT", "text", environ).lower(),
            sandbox=bool(get_env_integer(1, "TH_CFG_SANDBOX", 0, 1, environ)),
        )

    def validate(self) -> None:
        """
        Fail fast on values no server could run with.

        Raises:
            ConfigError: Describing the first invalid field.
        """
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")
        if not 1 <= self.backlog <= OS_MAX_BACKLOG:
            raise ConfigError(f"backlog must be 1-{OS_MAX_BACKLOG}")
        if self.rx_timeout <= 0 or self.tx_timeout <= 0:
            raise ConfigError("rx_timeout and tx_timeout must be > 0")
        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")
        if not self.notfound_route.startswith("/"):
            raise ConfigError(f"notfound_route must start with '/': {self.notfound_route!r}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level}")
        if self.log_format not in ("text", "json"):
            raise ConfigError(f"log_format must be 'text' or 'json', got {self.log_format!r}")

    def log_summary(self) -> None:
        """Log every resolved setting at INFO."""
        logger.info(f"listen backlog length (TH_CFG_LISTEN_BACKLOG): {self.backlog}")
        logger.info(f"listen address (TH_CFG_LISTEN_HOST/PORT): {self.host}:{self.port}")
        logger.info(f"receive timeout (TH_CFG_RX_TIMEOUT): {self.rx_timeout}")
        logger.info(f"transmit timeout (TH_CFG_TX_TIMEOUT): {self.tx_timeout}")
        logger.info(f"server root (TH_CFG_WEB_ROOT): {self.web_root}")
        logger.info(f"404 not found route (TH_CFG_NOTFOUND_ROUTE): {self.notfound_route}")
        logger.info(f"warm workers (TH_CFG_WORKERS): {self.min_workers}")
        logger.info(f"sandbox (TH_CFG_SANDBOX): {'on' if self.sandbox else 'off'}")
