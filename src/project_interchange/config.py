"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass


@dataclass
class Config:
    project_name: str = "Exported Project"
    host: str = "127.0.0.1"
    port: int = 8788
    max_upload_bytes: int = 10 * 1024 * 1024
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if name := os.environ.get("PIX_PROJECT_NAME"):
            config.project_name = name

        if host := os.environ.get("PIX_HOST"):
            config.host = host

        if port := os.environ.get("PIX_PORT"):
            config.port = int(port)

        if limit := os.environ.get("PIX_MAX_UPLOAD_BYTES"):
            config.max_upload_bytes = int(limit)

        if level := os.environ.get("PIX_LOG_LEVEL"):
            config.log_level = level.upper()

        return config


def get_config() -> Config:
    return Config.from_env()
