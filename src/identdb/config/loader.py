"""Configuration loading with pydantic-settings.

Sources, highest precedence first:
1. Keyword overrides passed to load_config()
2. Environment variables (IDENTDB__SECTION__KEY)
3. Repo config (<root>/.identdb/config.yaml)
4. Global config (~/.config/identdb/config.yaml)
5. Built-in defaults
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from identdb.config.models import (
    DatabaseConfig,
    IdentDbConfig,
    LoggingConfig,
    SamplerConfig,
    StoreConfig,
    TokenizerConfig,
)
from identdb.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/identdb/config.yaml").expanduser()
REPO_CONFIG_DIR = ".identdb"


def _load_yaml(path: Path) -> dict[str, Any]:
    """Mapping stored in ``path``; empty when the file is missing or null."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested sections merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class _YamlLayers(PydanticBaseSettingsSource):
    """YAML files merged in order, later files winning."""

    def __init__(self, settings_cls: type[BaseSettings], paths: list[Path]) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        for path in paths:
            self._data = _deep_merge(self._data, _load_yaml(path))

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self._data.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return self._data


def _settings_class(yaml_paths: list[Path]) -> type[BaseSettings]:
    class IdentDbSettings(BaseSettings):
        model_config = SettingsConfigDict(
            env_prefix="IDENTDB__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        database: DatabaseConfig = DatabaseConfig()
        store: StoreConfig = StoreConfig()
        tokenizer: TokenizerConfig = TokenizerConfig()
        sampler: SamplerConfig = SamplerConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (init_settings, env_settings, _YamlLayers(settings_cls, yaml_paths))

    return IdentDbSettings


def load_config(root: Path | None = None, **overrides: Any) -> IdentDbConfig:
    """Resolve the configuration for a working directory.

    Args:
        root: Directory holding ``.identdb/``. Defaults to the current directory.
        **overrides: Section values that beat every other source,
            e.g. ``store={"write_policy": "best_effort"}``.

    Raises:
        ConfigError: On unreadable YAML or a value that fails validation.
    """
    root = root or Path.cwd()
    settings_cls = _settings_class([GLOBAL_CONFIG_PATH, root / REPO_CONFIG_DIR / "config.yaml"])
    try:
        settings = settings_cls(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return IdentDbConfig.model_validate(settings.model_dump())
