"""Configuration for the relay server."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_PORT = 8080
ENV_PREFIX = "PHONERELAY_"


@dataclass
class ServerConfig:
    """Listening socket and frame limits.

    Attributes:
        host: Interface to bind (empty string binds all interfaces)
        port: TCP port to listen on (0 picks a free port)
        max_message_size: Largest accepted frame in bytes (None = unlimited)
    """

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    max_message_size: int | None = 16 * 1024 * 1024


@dataclass
class LivenessConfig:
    """Heartbeat sweep settings."""

    heartbeat_interval_seconds: float = 30.0


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    """Top-level relay configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "Config":
        """Create a configuration with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """Create a configuration from PHONERELAY_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            Defaults overridden by any variables that are set

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        config = cls.default()

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        host = get("HOST")
        if host is not None:
            config.server.host = host
        port = get("PORT")
        if port is not None:
            config.server.port = int(port)
        size = get("MAX_MESSAGE_SIZE")
        if size is not None:
            config.server.max_message_size = int(size) or None
        interval = get("HEARTBEAT_INTERVAL")
        if interval is not None:
            config.liveness.heartbeat_interval_seconds = float(interval)
        level = get("LOG_LEVEL")
        if level is not None:
            config.logging.level = level.upper()
        return config
