from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .crypto import KEY_SIZE


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class DatabaseConfig(BaseModel):
    """
    Accepts both snake_case and the camelCase option names
    (``dataFile``, ``collectionsFolder``, ``autoSave``, ``encryptionKey``, ``tabSize``).
    Unknown options are rejected.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid")

    data_file: Path = Path("./lightdb.json")
    collections_folder: Path = Path("./db-collections")
    # persist after every mutating call
    auto_save: bool = True
    encryption_key: str | None = None
    tab_size: int = Field(default=2, ge=0)

    @field_validator("encryption_key")
    @classmethod
    def _check_key(cls, v: str | None) -> str | None:
        if v is not None and len(v.encode("utf-8")) != KEY_SIZE:
            raise ValueError(f"The encryption key must have a length of {KEY_SIZE} bytes")
        return v

    @classmethod
    def coerce(cls, config: "DatabaseConfig | dict[str, Any] | None" = None, **options: Any) -> "DatabaseConfig":
        if isinstance(config, DatabaseConfig):
            if not options:
                return config
            config = config.model_dump()
        # one spelling per field, so camelCase and snake_case can be mixed
        names = {field.alias or name: name for name, field in cls.model_fields.items()}
        merged: dict[str, Any] = {}
        for source in (config or {}, options):
            for key, value in source.items():
                merged[names.get(key, key)] = value
        return cls.model_validate(merged)


def get_settings(env_file: str | None = None) -> DatabaseConfig:
    if env_file is not None:
        load_dotenv(env_file)

    options: dict[str, Any] = {"auto_save": _env_bool("LIGHTDB_AUTO_SAVE", True)}
    data_file = os.getenv("LIGHTDB_DATA_FILE")
    if data_file:
        options["data_file"] = data_file
    collections_folder = os.getenv("LIGHTDB_COLLECTIONS_FOLDER")
    if collections_folder:
        options["collections_folder"] = collections_folder
    encryption_key = os.getenv("LIGHTDB_ENCRYPTION_KEY")
    if encryption_key:
        options["encryption_key"] = encryption_key
    tab_size = os.getenv("LIGHTDB_TAB_SIZE")
    if tab_size:
        options["tab_size"] = tab_size

    return DatabaseConfig.model_validate(options)
