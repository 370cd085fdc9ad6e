"""
Configuration management and loading.

Handles application settings from YAML and secrets from the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from yt_stock_ai.storage.db import DEFAULT_DB_PATH

CONFIG_ENV_VAR = "YT_STOCK_AI_CONFIG"


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the SQLite database lives."""
    path: str = DEFAULT_DB_PATH

    def __post_init__(self):
        if not self.path:
            raise ValueError("database path cannot be empty")


@dataclass(frozen=True)
class ExtractionConfig:
    """Generative model used to extract recommendations."""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7

    def __post_init__(self):
        """Validate model name and temperature range."""
        if not self.model:
            raise ValueError("extraction model cannot be empty")
        if not 0 <= self.temperature <= 2:
            raise ValueError("extraction temperature must be between 0 and 2")


@dataclass(frozen=True)
class TranscriptConfig:
    """Preferred caption languages, in priority order."""
    languages: Tuple[str, ...] = ("en",)

    def __post_init__(self):
        if not self.languages:
            raise ValueError("transcript languages cannot be empty")


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server binding and CORS origins."""
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: Tuple[str, ...] = ("http://localhost:3000",)

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError("server port must be between 1 and 65535")


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class LoggingConfig:
    """Log level shared by the CLI and uvicorn."""
    level: str = "INFO"

    def __post_init__(self):
        if self.level.upper() not in LOG_LEVELS:
            raise ValueError(f"unknown logging level: {self.level}")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    transcripts: TranscriptConfig = field(default_factory=TranscriptConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTION_KEYS: Dict[str, set] = {
    "database": {"path"},
    "extraction": {"model", "temperature"},
    "transcripts": {"languages"},
    "server": {"host", "port", "cors_origins"},
    "logging": {"level"},
}


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    The path defaults to the YT_STOCK_AI_CONFIG environment variable. With
    neither set, built-in defaults are used. A ``.env`` file is loaded first
    so secrets such as OPENAI_API_KEY reach the OpenAI client; secrets are
    never read from YAML.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If an explicitly given config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    load_dotenv()

    path = path or os.getenv(CONFIG_ENV_VAR)
    if not path:
        return AppConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, allowed in _SECTION_KEYS.items():
        data = raw_config.get(name) or {}
        if not isinstance(data, dict):
            raise ValueError(f"'{name}' must be a dictionary")
        unknown = set(data.keys()) - allowed
        if unknown:
            raise ValueError(f"Unknown keys in {name}: {unknown}")
        sections[name] = data

    return AppConfig(
        database=DatabaseConfig(**_strings(sections["database"], "database", ("path",))),
        extraction=_parse_extraction(sections["extraction"]),
        transcripts=TranscriptConfig(
            languages=_string_list(sections["transcripts"], "transcripts.languages", ("en",))
        ),
        server=_parse_server(sections["server"]),
        logging=LoggingConfig(**_strings(sections["logging"], "logging", ("level",))),
    )


def _strings(data: Dict, path: str, keys: Tuple[str, ...]) -> Dict[str, str]:
    values = {}
    for key in keys:
        if key in data:
            if not isinstance(data[key], str):
                raise ValueError(f"'{key}' in {path} must be a string")
            values[key] = data[key]
    return values


def _string_list(data: Dict, path: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    key = path.rsplit(".", 1)[-1]
    if key not in data:
        return default
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"'{path}' must be a list of strings")
    return tuple(value)


def _parse_extraction(data: Dict) -> ExtractionConfig:
    values = _strings(data, "extraction", ("model",))
    if "temperature" in data:
        temperature = data["temperature"]
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            raise ValueError("'temperature' in extraction must be a number")
        values["temperature"] = float(temperature)
    return ExtractionConfig(**values)


def _parse_server(data: Dict) -> ServerConfig:
    values = _strings(data, "server", ("host",))
    if "port" in data:
        port = data["port"]
        if isinstance(port, bool) or not isinstance(port, int):
            raise ValueError("'port' in server must be an integer")
        values["port"] = port
    if "cors_origins" in data:
        values["cors_origins"] = _string_list(data, "server.cors_origins", ())
    return ServerConfig(**values)
