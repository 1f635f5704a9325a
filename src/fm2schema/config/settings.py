"""Settings for one fm2schema run.

Sources, strongest first: keyword arguments (the CLI flags), ``FM2SCHEMA_*``
environment variables with ``__`` between section and key, the TOML file,
and finally the defaults on the section models.
"""

from __future__ import annotations

import threading
import tomllib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from fm2schema.config.discovery import find_config
from fm2schema.config.models import AggregationConfig, InputConfig, OutputConfig, ProcessingConfig

# Parsed TOML for the settings object currently being built on this thread.
_pending = threading.local()


def read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise click.ClickException(msg) from exc


@contextmanager
def _toml_scope(data: dict[str, Any]) -> Iterator[None]:
    _pending.data = data
    try:
        yield
    finally:
        _pending.data = {}


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Serve sections from already-parsed TOML."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data = data

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


class Fm2Settings(BaseSettings):
    model_config = SettingsConfigDict(
        frozen=True,
        env_prefix="FM2SCHEMA_",
        env_nested_delimiter="__",
    )

    config_path: Path | None = None

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml = TomlSettingsSource(settings_cls, getattr(_pending, "data", {}))
        return init_settings, env_settings, toml

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        start: Path | None = None,
        **cli_flags: Any,
    ) -> Fm2Settings:
        """Build settings for a CLI run.

        ``-c PATH`` must name an existing file.  Without it the nearest
        ``fm2schema.toml`` above *start* is used, if any.  Unparsable TOML
        and a missing ``-c`` target both surface as ``ClickException``.
        """
        if config_path:
            toml_path: Path | None = Path(config_path)
            if not toml_path.is_file():
                msg = f"Config file not found: {config_path}"
                raise click.ClickException(msg)
        else:
            toml_path = find_config(start)

        data = read_toml(toml_path) if toml_path else {}
        with _toml_scope(data):
            return cls(config_path=toml_path, **cli_flags)
