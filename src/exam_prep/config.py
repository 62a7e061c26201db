"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'access' in data:
            access = data['access']
            flattened['trial_days'] = access.get('trial_days')
            flattened['preview_chars'] = access.get('preview_chars')
            flattened['admin_emails'] = access.get('admin_emails')
        if 'progress' in data:
            progress = data['progress']
            flattened['tick_interval_seconds'] = progress.get('tick_interval_seconds')
            flattened['default_daily_goal_minutes'] = progress.get('default_daily_goal_minutes')
            flattened['default_estimated_minutes'] = progress.get('default_estimated_minutes')
        if 'paths' in data:
            flattened['data_dir'] = data['paths'].get('data_dir')
            flattened['content_dir'] = data['paths'].get('content_dir')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Access
    trial_days: int = Field(default=7, ge=0)
    preview_chars: int = Field(default=500, ge=0)
    admin_emails: list[str] = Field(default_factory=list)

    # Progress
    tick_interval_seconds: float = Field(default=30.0, gt=0)
    default_daily_goal_minutes: int = Field(default=60, ge=0)
    default_estimated_minutes: int = Field(default=45, ge=0)

    # Paths (relative paths are resolved against project_root)
    project_root: Path = Field(default_factory=_find_project_root)
    data_dir: Path = Field(default=Path("data"))
    content_dir: Path = Field(default=Path("content"))

    @property
    def documents_dir(self) -> Path:
        d = self.data_dir if self.data_dir.is_absolute() else self.project_root / self.data_dir
        d = d / "documents"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def content_root(self) -> Path:
        if self.content_dir.is_absolute():
            return self.content_dir
        return self.project_root / self.content_dir

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
