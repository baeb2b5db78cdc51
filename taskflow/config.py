# TaskFlow: configuration
# Override defaults via a YAML file (TASKFLOW_CONFIG) and TASKFLOW_DB.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

CONFIG_PATH = Path("config.yaml")


@dataclass
class Config:
    """Runtime configuration for the TaskFlow core and API server."""

    # Storage
    db_path: str = "~/.local/share/taskflow/taskflow.db"

    # API server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    # Metrics windows and display limits
    window_days: int = 7
    upcoming_limit: int = 5
    recent_activity_limit: int = 5

    def __post_init__(self):
        """Reject windows and limits the metrics cannot use."""
        if isinstance(self.window_days, bool) or not isinstance(self.window_days, int) or self.window_days < 1:
            raise ValueError(f"window_days must be a positive integer, got {self.window_days!r}")
        for name in ("upcoming_limit", "recent_activity_limit"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    def resolve_paths(self):
        """Expand ~ and apply the TASKFLOW_DB override."""
        env_db = os.environ.get("TASKFLOW_DB")
        if env_db:
            self.db_path = env_db
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("TASKFLOW_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
            cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg
