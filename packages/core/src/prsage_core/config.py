import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "provider": "anthropic",  # anthropic | openai
    "model_name": None,  # None = the provider's default model
    "token_budget": None,  # None = look the model up in prompts.TOKEN_LIMITS
    "max_retries": 2,
    "temperature": None,  # None = the provider default
    "max_tokens": None,
    "chunk_size": 5,
    "max_chars_per_file": 20000,
    "guidelines": None,  # path to a Markdown file appended to the system prompt
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "post_comments": True,
    "store": "memory",  # memory | sqlite
    "store_path": ".prsage.db",
    "max_workers": 4,
    "token_ttl_seconds": 3000,
    "app_id": None,
    "private_key_path": None,
    "installation_id": None,
}


def load_config(config_path: str = ".prsage.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prsage.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_guidelines(config: dict) -> str:
    """
    Load optional team review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise there are no extra guidelines and "" is returned.
    """
    custom_path = config.get("guidelines")
    if not custom_path:
        return ""
    p = Path(custom_path)
    if not p.exists():
        raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
    return p.read_text()
