from pathlib import Path
from typing import Optional

import yaml

from prflow_core.issues import DEFAULT_ISSUE_PATTERN

DEFAULT_CONFIG: dict = {
    "command_prefix": "/",
    "required_approvals": 1,
    "count_stale_approvals": True,  # forges keep approvals given to an older head
    "required_checks": [],  # empty = every check reported for the head must pass
    "target_branches": [],  # empty = all branches
    "ready_label": "ready",
    "sponsor_label": "sponsor",
    "integrated_label": "integrated",
    "issue_pattern": DEFAULT_ISSUE_PATTERN,
    "census": "github",  # "github" (collaborator permissions) or "static" (YAML file)
    "census_path": "census.yml",
    "project": None,
    "poll_interval": 60,
    "workers": 4,
    "close_after_integration": True,
    "check_name": "prflow",  # the bot's own check run; empty to publish none
}

_LIST_KEYS = ("required_checks", "target_branches")


def load_config(config_path: str = ".prflow.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prflow.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, **{key: list(DEFAULT_CONFIG[key]) for key in _LIST_KEYS}}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    return config


def validate_config(config: dict) -> dict:
    """Reject settings the engine cannot work with. Returns the config unchanged."""
    if not config.get("command_prefix"):
        raise ValueError("command_prefix must not be empty.")
    if int(config.get("required_approvals", 1)) < 1:
        raise ValueError("required_approvals must be at least 1.")
    if int(config.get("workers", 1)) < 1:
        raise ValueError("workers must be at least 1.")
    if float(config.get("poll_interval", 60)) <= 0:
        raise ValueError("poll_interval must be positive.")
    for key in _LIST_KEYS:
        if not isinstance(config.get(key) or [], list):
            raise ValueError(f"{key} must be a list.")
    if config.get("check_name") and config["check_name"] in (config.get("required_checks") or []):
        raise ValueError("check_name must not be one of required_checks.")
    if config.get("census") not in ("github", "static"):
        raise ValueError(f"Unknown census backend: {config.get('census')!r}. Choose 'github' or 'static'.")
    return config
