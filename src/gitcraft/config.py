import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigError

ENV_OVERRIDES = {
    "GITCRAFT_COUNT": "default_count",
    "GITCRAFT_LOG_DIR": "log_dir",
    "GITCRAFT_EDITOR": "editor",
}


class Settings(BaseModel):
    """User settings; every field has a usable default."""

    default_count: int = Field(20, ge=1)
    log_dir: Path = Path("logs")
    editor: str | None = None

    def resolve_editor(self) -> str:
        return self.editor or os.environ.get("EDITOR") or "vi"


def config_path() -> Path:
    return Path.home() / ".config" / "gitcraft" / "config.toml"


def load_settings(path: Path | None = None) -> Settings:
    """Read the TOML settings file, then apply ``GITCRAFT_*`` overrides."""
    load_dotenv()
    path = path or config_path()

    values: dict[str, object] = {}
    if path.is_file():
        try:
            values.update(tomllib.loads(path.read_text(encoding="utf-8")))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"cannot read {path}: {e}") from e
        logger.debug(f"Settings read from {path}")

    for variable, field in ENV_OVERRIDES.items():
        if value := os.environ.get(variable):
            values[field] = value

    try:
        return Settings.model_validate(values)
    except PydanticValidationError as e:
        raise ConfigError(f"invalid settings: {e}") from e
