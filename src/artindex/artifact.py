"""
Artifact value types.

Provides:
- Gav coordinates parsed from Maven-2 repository paths
- ArtifactContext, the ephemeral unit handed from the crawler to the indexer
- ArtifactInfo, the read-only view of one index hit
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Mapping

NOT_AVAILABLE = "NA"

SNAPSHOT_SUFFIX = "-SNAPSHOT"

_TIMESTAMP_VERSION = re.compile(r"^(\d{8}\.\d{6}-\d+)")


@dataclass(frozen=True)
class Gav:
    """Maven coordinates of a single artifact file."""

    group_id: str
    artifact_id: str
    version: str
    classifier: str | None = None
    extension: str = "jar"

    @property
    def uinfo(self) -> str:
        """Unique document key: group|artifact|version|classifier|extension."""
        return "|".join(
            [
                self.group_id,
                self.artifact_id,
                self.version,
                self.classifier or NOT_AVAILABLE,
                self.extension,
            ]
        )

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id, self.version]
        if self.classifier:
            parts.append(self.classifier)
        parts.append(self.extension)
        return ":".join(parts)

    @classmethod
    def from_path(cls, relative_path: str | PurePosixPath) -> "Gav | None":
        """
        Parse coordinates from a path relative to the repository root.

        Layout: g1/g2/.../artifactId/version/artifactId-version[-classifier].ext

        Returns:
            The coordinates, or None when the path does not follow the layout.
        """
        parts = PurePosixPath(relative_path).parts
        if len(parts) < 4:
            return None

        group_id = ".".join(parts[:-3])
        artifact_id, base_version, file_name = parts[-3], parts[-2], parts[-1]

        version = base_version
        prefix = f"{artifact_id}-{base_version}"
        if file_name.startswith(prefix):
            rest = file_name[len(prefix):]
        elif base_version.endswith(SNAPSHOT_SUFFIX):
            # Timestamped snapshot: artifact-1.0-20240101.120000-1.jar
            snapshot_prefix = f"{artifact_id}-{base_version[: -len(SNAPSHOT_SUFFIX)]}-"
            if not file_name.startswith(snapshot_prefix):
                return None
            tail = file_name[len(snapshot_prefix):]
            match = _TIMESTAMP_VERSION.match(tail)
            if match is None:
                return None
            version = f"{base_version[: -len(SNAPSHOT_SUFFIX)]}-{match.group(1)}"
            rest = tail[match.end():]
        else:
            return None

        classifier: str | None = None
        if rest.startswith("-"):
            classifier, dot, extension = rest[1:].partition(".")
            if not classifier or not dot:
                return None
        elif rest.startswith("."):
            extension = rest[1:]
        else:
            return None

        if not extension:
            return None

        return cls(
            group_id=group_id,
            artifact_id=artifact_id,
            version=version,
            classifier=classifier,
            extension=extension,
        )

    def repository_path(self) -> PurePosixPath:
        """Path of this artifact relative to a Maven-2 repository root."""
        base_version = self.version
        match = re.search(r"-\d{8}\.\d{6}-\d+$", self.version)
        if match is not None:
            base_version = self.version[: match.start()] + SNAPSHOT_SUFFIX

        file_name = f"{self.artifact_id}-{self.version}"
        if self.classifier:
            file_name += f"-{self.classifier}"
        file_name += f".{self.extension}"

        return PurePosixPath(
            *self.group_id.split("."), self.artifact_id, base_version, file_name
        )


@dataclass
class ArtifactContext:
    """One discovered artifact on its way into an index."""

    gav: Gav
    path: Path | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    errors: list[Exception] = field(default_factory=list)

    @classmethod
    def from_repository_file(
        cls,
        repository: Path,
        file_path: Path,
    ) -> "ArtifactContext | None":
        """Build a context for a file inside a Maven-2 repository."""
        try:
            relative = file_path.relative_to(repository)
        except ValueError:
            return None

        gav = Gav.from_path(relative.as_posix())
        if gav is None:
            return None
        return cls(gav=gav, path=file_path)


@dataclass(frozen=True)
class ArtifactInfo:
    """Denormalised metadata of one index hit."""

    group_id: str
    artifact_id: str
    version: str
    classifier: str | None
    extension: str
    packaging: str | None = None
    sha1: str | None = None
    size: int | None = None
    last_modified: int | None = None
    file_name: str | None = None
    repository_id: str | None = None
    context_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def gav(self) -> Gav:
        return Gav(
            group_id=self.group_id,
            artifact_id=self.artifact_id,
            version=self.version,
            classifier=self.classifier,
            extension=self.extension,
        )

    @property
    def uinfo(self) -> str:
        return self.gav.uinfo

    @property
    def sort_key(self) -> tuple[str, str, str, str, str]:
        """Ordinal ordering shared by every search shape."""
        return (
            self.group_id,
            self.artifact_id,
            self.version,
            self.classifier or "",
            self.extension,
        )

    def __str__(self) -> str:
        return str(self.gav)
