"""Application configuration: defaults, optional JSON file, environment overrides."""

import json
import os
import re
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, Union

_INTEGER = re.compile(r"[+-]?\d+")


@dataclass
class ServerConfig:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8081
    read_timeout: timedelta = timedelta(seconds=5)
    write_timeout: timedelta = timedelta(seconds=10)
    idle_timeout: timedelta = timedelta(seconds=120)
    shutdown_timeout: timedelta = timedelta(seconds=10)


@dataclass
class MongoDBConfig:
    """MongoDB connection settings."""

    uri: str = "mongodb://localhost:27017"
    database: str = "catchall"
    collection: str = "domains"
    connect_timeout: timedelta = timedelta(seconds=30)
    operation_timeout: timedelta = timedelta(seconds=5)


@dataclass
class MetricsConfig:
    """Metrics collection settings."""

    enabled: bool = True
    collection_interval: timedelta = timedelta(seconds=15)


@dataclass
class BusinessConfig:
    """Business rules: delivered events needed to call a domain catch-all."""

    delivered_threshold: int = 1000


@dataclass
class Config:
    """All application configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    mongodb: MongoDBConfig = field(default_factory=MongoDBConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    business: BusinessConfig = field(default_factory=BusinessConfig)


def _convert(kind: Any, value: Any, path: str) -> Any:
    if kind is timedelta:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{path}: expected a duration in nanoseconds, got {value!r}")
        return timedelta(microseconds=value / 1000)
    if kind is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{path}: expected a boolean, got {value!r}")
        return value
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{path}: expected an integer, got {value!r}")
        return value
    if kind is str:
        if not isinstance(value, str):
            raise ValueError(f"{path}: expected a string, got {value!r}")
        return value
    raise ValueError(f"{path}: unsupported field type")


def _merge(target: Any, data: Any, path: str) -> None:
    """Overlay decoded JSON onto a dataclass instance, keeping unset fields."""
    if data is None:
        return
    if not isinstance(data, dict):
        raise ValueError(f"{path or 'config'}: expected an object, got {data!r}")
    by_name = {f.name.lower(): f for f in fields(target)}
    for key, value in data.items():
        spec = by_name.get(key.lower())
        if spec is None or value is None:
            continue
        key_path = f"{path}.{spec.name}" if path else spec.name
        current = getattr(target, spec.name)
        if hasattr(current, "__dataclass_fields__"):
            _merge(current, value, key_path)
        else:
            setattr(target, spec.name, _convert(spec.type, value, key_path))


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name, "")
    if raw and _INTEGER.fullmatch(raw):
        return int(raw)
    return None


def load_config(filename: Union[str, Path, None] = "") -> Config:
    """Build the configuration from defaults, an optional JSON file and the environment.

    Durations in the file are integer nanoseconds. Raises OSError when the file
    cannot be read and ValueError when its content is malformed.
    """
    config = Config()

    if filename:
        text = Path(filename).read_text(encoding="utf-8")
        data, _ = json.JSONDecoder().raw_decode(text.lstrip())
        _merge(config, data, "")

    if host := os.environ.get("SERVER_HOST"):
        config.server.host = host
    if (port := _env_int("SERVER_PORT")) is not None:
        config.server.port = port
    if uri := os.environ.get("MONGODB_URI"):
        config.mongodb.uri = uri
    if database := os.environ.get("MONGODB_DATABASE"):
        config.mongodb.database = database
    if (threshold := _env_int("DELIVERED_THRESHOLD")) is not None:
        config.business.delivered_threshold = threshold

    return config