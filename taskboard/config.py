# Task board: configuration
# Override endpoints and behaviour via taskboard.yaml or environment.

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .dnd import TransitionTable, parse_transitions
from .errors import ConfigError

CONFIG_PATH = Path("taskboard.yaml")

LOG_FORMAT = "%(asctime)s [taskboard] %(levelname)s: %(message)s"


@dataclass
class Config:
    """Runtime configuration for a board session."""

    # Remote API
    api_base_url: str = "http://localhost:3000"
    api_prefix: str = "/api/project-management"
    request_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"

    # Workflow: {status: [allowed next statuses]}; empty = any → any
    workflow_transitions: Dict[str, List[str]] = field(default_factory=dict)

    # Notifications kept for late subscribers
    notification_history: int = 50

    def apply_env(self) -> None:
        """Environment variables win over the file."""
        url = os.environ.get("TASKBOARD_API_URL")
        if url:
            self.api_base_url = url
        level = os.environ.get("TASKBOARD_LOG_LEVEL")
        if level:
            self.log_level = level

    def transition_table(self) -> Optional[TransitionTable]:
        try:
            return parse_transitions(self.workflow_transitions)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML, falling back to defaults when the file is absent."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg = cls()
        cfg.apply_env()
        return cfg


def configure_logging(level: str = "INFO") -> None:
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        raise ConfigError(f"Unknown log level: {level}")
    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
