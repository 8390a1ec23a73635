"""
Studio Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

from dotenv import load_dotenv


@dataclass
class StudioConfig:
    """Configuration for the studio persistence engine"""

    # Autosave timing (seconds)
    autosave_delay: float = 30.0
    chat_save_delay: float = 1.0
    teardown_timeout: float = 5.0

    # Version history
    max_versions: int = 50

    # Remote persistence
    api_base_url: str = "http://localhost:8000/api/v1"
    auth_token: Optional[str] = None
    timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0  # doubles each attempt
    replay_pause: float = 0.5  # between replayed pending saves

    # Connectivity probing
    probe_interval: float = 5.0
    probe_max_delay: float = 60.0

    # Recovery
    recovery_history_limit: int = 10

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    json_logging: bool = False

    # Paths
    config_dir: str = field(default_factory=lambda: str(Path.home() / ".studio"))
    local_store_dir: str = ""

    def __post_init__(self):
        self.resolve_paths()

    def resolve_paths(self, default_store_dir: Optional[str] = None) -> None:
        """
        Resolve the local store directory under the config directory.
        A value still equal to default_store_dir (the one derived from an
        earlier config_dir) is derived again.
        """
        if not self.local_store_dir or self.local_store_dir == default_store_dir:
            self.local_store_dir = str(Path(self.config_dir) / "local_store")
        elif not os.path.isabs(self.local_store_dir):
            self.local_store_dir = str(Path(self.config_dir) / self.local_store_dir)

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            default_store_dir = str(Path(self.config_dir) / "local_store")
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)
            self.resolve_paths(default_store_dir)

    def save_to_file(self, config_path: Optional[str] = None) -> None:
        """Save configuration to JSON file"""
        path = Path(config_path or (Path(self.config_dir) / "config.json"))
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def load_default(cls) -> "StudioConfig":
        """Load default configuration from user config directory"""
        load_dotenv()

        config = cls()
        default_config_path = Path(config.config_dir) / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        # Override with environment variables
        config._load_from_env()
        config.resolve_paths()

        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "STUDIO_API_URL": "api_base_url",
            "STUDIO_AUTH_TOKEN": "auth_token",
            "STUDIO_AUTOSAVE_DELAY": ("autosave_delay", float),
            "STUDIO_CHAT_SAVE_DELAY": ("chat_save_delay", float),
            "STUDIO_MAX_VERSIONS": ("max_versions", int),
            "STUDIO_MAX_RETRIES": ("max_retries", int),
            "STUDIO_RETRY_BASE_DELAY": ("retry_base_delay", float),
            "STUDIO_TIMEOUT": ("timeout", float),
            "STUDIO_LOCAL_STORE_DIR": "local_store_dir",
            "STUDIO_LOG_LEVEL": "log_level",
            "STUDIO_LOG_FILE": "log_file",
            "STUDIO_JSON_LOGGING": ("json_logging", lambda x: x.lower() == "true"),
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    setattr(self, attr, converter(value))
                else:
                    setattr(self, mapping, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return asdict(self)
