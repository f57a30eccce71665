"""
Configuration loading from environment variables and .env files.
"""
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
from pathlib import Path
import os

from dotenv import load_dotenv


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./fieldvault.db"


@dataclass
class ConfigLoader:
    """Configuration loader from environment variables."""

    _config: Dict[str, Any] = field(default_factory=dict)

    def load(self, env_path: Optional[str] = None) -> None:
        """Load configuration from .env file."""
        if env_path:
            load_dotenv(env_path)
        else:
            # Try to find .env in project root
            project_root = Path(__file__).parent.parent
            env_file = project_root / ".env"
            if env_file.exists():
                load_dotenv(env_file)

        self._config = {
            "app": {
                "log_level": os.getenv("APP_LOG_LEVEL", "INFO"),
                "log_dir": os.getenv("APP_LOG_DIR", ""),
            },
            "database": {
                "url": os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
            },
            "security": {
                "encryption_key": os.getenv("ENCRYPTION_KEY", "").strip()
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot notation key."""
        keys = key.split('.')
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def is_encryption_configured(self) -> bool:
        """Check if an encryption key is set (format is validated by the service)."""
        return bool(self.get("security.encryption_key"))
