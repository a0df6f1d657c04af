"""
Centralized settings and path configuration for the order desk.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


TRUE_VALUES = ('1', 'true', 'yes', 'on')


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in TRUE_VALUES


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # JSON document store (one file per collection)
    data_dir: Path

    # Reject backward status moves (Delivered → Requested etc.)
    strict_status: bool = False

    # Orders delivered longer ago than this are purged by the cleanup job
    retention_days: int = 60

    log_level: str = 'INFO'

    # Country prefix prepended to local phone numbers in WhatsApp links
    phone_country_prefix: str = '2'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()

        data_dir = os.getenv('ORDER_DESK_DATA_DIR')

        return cls(
            project_root=root,
            data_dir=Path(data_dir) if data_dir else root / 'data',
            strict_status=_env_flag('ORDER_DESK_STRICT_STATUS', False),
            retention_days=int(os.getenv('ORDER_DESK_RETENTION_DAYS', '60') or 60),
            log_level=os.getenv('ORDER_DESK_LOG_LEVEL', 'INFO').upper(),
            phone_country_prefix=os.getenv('ORDER_DESK_PHONE_PREFIX', '2'),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached instance so the next call re-reads the environment."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[Settings] = None):
    """Configure root logging once for scripts and the API process."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
