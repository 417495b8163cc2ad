import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("ROOMBA_BRIDGE_CONFIG", "config.toml")
_ENV_PATH = os.getenv("ROOMBA_BRIDGE_ENV", ".env")


class ScheduleSettings(BaseModel):
    storage_path: Path = Path("var") / "schedules.json"
    # Reject a whole PATCH when any field is invalid instead of skipping it
    strict_patch_validation: bool = False


class AuditSettings(BaseModel):
    enabled: bool = True
    log_file: str = "operations.log"
    max_entries: int = 500


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    logs_dir: Path = Field(default=Path("logs"))
    static_path: Optional[Path] = None

    schedules: ScheduleSettings = Field(default_factory=ScheduleSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
