"""
Configuration module for artindex.

Provides strongly-typed configuration with pydantic, supporting both
file-based and environment variable configuration.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Index storage configuration."""

    db_filename: str = Field(
        default="index.db",
        min_length=1,
        description="File name of the SQLite database inside an index directory",
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        le=600000,
        description="How long a connection waits on a locked database",
    )


class ScanConfig(BaseModel):
    """Repository crawler configuration."""

    ignore_patterns: list[str] = Field(
        default_factory=lambda: [
            ".*",
            "*.md5",
            "*.sha1",
            "*.sha256",
            "*.sha512",
            "*.asc",
            "*.lastUpdated",
            "maven-metadata*.xml",
            "_remote.repositories",
            "resolver-status.properties",
            "archetype-catalog.xml",
        ],
        description="File name globs that are never reported as artifacts",
    )
    ignore_dirs: list[str] = Field(
        default_factory=lambda: [
            ".*",
            ".index",
            ".meta",
            ".nexus",
        ],
        description="Directory name globs pruned from the walk",
    )
    digest_chunk_size: int = Field(
        default=4096,
        ge=512,
        le=16 * 1024 * 1024,
        description="Chunk size used when streaming files through SHA-1",
    )
    follow_symlinks: bool = Field(
        default=False,
        description="Follow symlinked directories while crawling",
    )


class SearchConfig(BaseModel):
    """Search configuration."""

    max_results: int = Field(
        default=10000,
        ge=1,
        le=1000000,
        description="Cap on hits materialised by flat and grouped searches",
    )


class ContextConfig(BaseModel):
    """A declaratively configured indexing context."""

    id: str = Field(min_length=1, description="Context id")
    repository_id: str | None = Field(
        default=None,
        description="Repository id (defaults to the context id)",
    )
    repository: Path | None = Field(
        default=None,
        description="Repository root to scan",
    )
    index_directory: Path | None = Field(
        default=None,
        description="Index directory (defaults to <data_dir>/indexes/<id>)",
    )
    repository_url: str | None = None
    index_update_url: str | None = None
    searchable: bool = True
    forced: bool = Field(
        default=False,
        description="Discard an incompatible existing index instead of failing",
    )
    creators: list[str] = Field(
        default_factory=lambda: ["min", "sha1"],
        description="Ids of the index creators to run per artifact",
    )
    members: list[str] = Field(
        default_factory=list,
        description="Member context ids; a non-empty list makes a merged context",
    )

    @model_validator(mode="after")
    def default_repository_id(self) -> "ContextConfig":
        """Fall back to the context id for the repository id."""
        if self.repository_id is None:
            self.repository_id = self.id
        return self

    @property
    def is_merged(self) -> bool:
        return bool(self.members)


class Config(BaseSettings):
    """
    Main artindex configuration.

    Can be configured via:
    1. Configuration file (artindex.toml, artindex.yaml or JSON)
    2. Environment variables with ARTINDEX_ prefix
    3. Programmatic overrides
    """

    model_config = SettingsConfigDict(
        env_prefix="ARTINDEX_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    data_dir: Path = Field(
        default=Path(".artindex"),
        description="Data directory for indexes",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    contexts: list[ContextConfig] = Field(default_factory=list)

    @field_validator("contexts")
    @classmethod
    def unique_context_ids(cls, v: list[ContextConfig]) -> list[ContextConfig]:
        """Reject duplicate context ids up front."""
        seen: set[str] = set()
        for context in v:
            if context.id in seen:
                raise ValueError(f"Duplicate context id in configuration: {context.id}")
            seen.add(context.id)
        return v

    @property
    def indexes_dir(self) -> Path:
        """Directory holding per-context index directories."""
        return self.data_dir / "indexes"

    def index_directory_for(self, context: ContextConfig) -> Path:
        """Resolve the index directory of a configured context."""
        if context.index_directory is not None:
            return context.index_directory
        return self.indexes_dir / context.id

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from a TOML, YAML or JSON file."""
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()
        content = path.read_text()

        if suffix == ".toml":
            data = tomllib.loads(content)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {suffix}")

        return cls(**data)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return self.model_dump()


def load_config(
    config_path: Path | None = None,
    project_root: Path | None = None,
) -> Config:
    """
    Load configuration with automatic discovery.

    Priority:
    1. Explicit config_path if provided
    2. artindex.toml in project_root
    3. .artindex/config.toml in project_root
    4. artindex.yaml / .artindex/config.yaml in project_root
    5. Default configuration
    """
    root = project_root or Path.cwd()

    if config_path is not None:
        return Config.from_file(config_path)

    candidates = [
        root / "artindex.toml",
        root / ".artindex" / "config.toml",
        root / "artindex.yaml",
        root / ".artindex" / "config.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return Config.from_file(candidate)

    return Config(data_dir=root / ".artindex")
