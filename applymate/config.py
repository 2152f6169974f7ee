"""Configuration management."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from .errors import ConfigurationError

DEFAULT_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class Config(BaseModel):
    """Application configuration."""

    spreadsheet_id: str
    sheet_name: str = "Sheet1"
    sheet_gid: int = 0
    log_level: str = "INFO"

    text_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    image_model: str = "llama-3.2-90b-vision-preview"
    groq_base_url: str = DEFAULT_GROQ_BASE_URL
    request_timeout: float = 15.0
    image_timeout: float = 20.0

    turn_timeout: float = 30.0
    recursion_limit: int = 25
    history_trigger: int = 18
    history_keep: int = 15
    max_retries: int = 3
    repeat_call_limit: Optional[int] = None

    service_account_file: Optional[str] = None
    relay_url: Optional[str] = None
    media_dir: str = "media"
    host: str = "0.0.0.0"
    port: int = 3000


_config: Optional[Config] = None


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file."""
    global _config

    if _config is not None:
        return _config

    if config_path is None:
        config_path = Path(__file__).parent.parent / "config" / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. "
            "Copy config/config.yaml.example to config/config.yaml and fill in your settings."
        )

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    _config = Config(**data)
    return _config


def get_config() -> Config:
    """Get the loaded configuration."""
    if _config is None:
        return load_config()
    return _config


def load_api_keys(environ: Optional[dict] = None) -> list[str]:
    """Read Groq API keys from GROQ_API_KEYS (comma separated) or GROQ_API_KEY."""
    env = os.environ if environ is None else environ

    if env.get("GROQ_API_KEYS"):
        keys = [key.strip() for key in env["GROQ_API_KEYS"].split(",")]
    elif env.get("GROQ_API_KEY"):
        keys = [env["GROQ_API_KEY"].strip()]
    else:
        raise ConfigurationError(
            "No Groq API keys found. Set GROQ_API_KEYS or GROQ_API_KEY environment variable."
        )

    keys = [key for key in keys if key]
    if not keys:
        raise ConfigurationError("No valid Groq API keys provided.")
    return keys
