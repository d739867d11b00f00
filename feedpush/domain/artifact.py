"""
Artifact and version domain objects for feedpush.

Versions are semantic versions (MAJOR.MINOR.PATCH[-prerelease][+build]).
The prerelease part decides the package quality, and the quality decides
which feed views a published package is promoted into:

    1.0.0            -> Stable  -> Stable, Latest, Preview, CI
    1.0.0-rc.1       -> Latest  -> Latest, Preview, CI
    1.0.0-beta.2     -> Preview -> Preview, CI
    1.0.0-ci.3       -> CI      -> CI
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Dict, Any

from ..exit_codes import InvalidArgumentError


_VERSION_RE = re.compile(
    r'^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)'
    r'(?:-(?P<prerelease>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?'
    r'(?:\+(?P<build>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?$'
)

CI_MARKERS = ('ci', 'dev')
LATEST_MARKERS = ('rc', 'pre', 'prerelease')


class PackageQuality(Enum):
    """Stability classification of a version, lowest first."""
    CI = "CI"
    PREVIEW = "Preview"
    LATEST = "Latest"
    STABLE = "Stable"

    @property
    def rank(self) -> int:
        return _QUALITY_ORDER.index(self)

    def labels(self) -> Tuple[str, ...]:
        """View labels for this quality: its own first, then every lower one."""
        return tuple(q.value for q in reversed(_QUALITY_ORDER[:self.rank + 1]))


_QUALITY_ORDER = (
    PackageQuality.CI,
    PackageQuality.PREVIEW,
    PackageQuality.LATEST,
    PackageQuality.STABLE,
)


@dataclass(frozen=True)
class PackageVersion:
    """A parsed semantic version."""
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    build: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> 'PackageVersion':
        """
        Parse a version string.

        Args:
            text: Version such as "2.0.0-ci.3" (a leading "v" is accepted)

        Returns:
            Parsed PackageVersion

        Raises:
            InvalidArgumentError: If text is not a semantic version
        """
        match = _VERSION_RE.match((text or '').strip())
        if not match:
            raise InvalidArgumentError(f"Invalid package version: '{text}'")
        return cls(
            major=int(match.group('major')),
            minor=int(match.group('minor')),
            patch=int(match.group('patch')),
            prerelease=match.group('prerelease'),
            build=match.group('build'),
        )

    @property
    def package_string(self) -> str:
        """Version as it appears in package file names (no build metadata)."""
        core = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            core += f"-{self.prerelease}"
        return core

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    @property
    def quality(self) -> PackageQuality:
        if not self.prerelease:
            return PackageQuality.STABLE
        # CSemVer style "0.0.0--ci.x" versions start their prerelease with "-"
        first = self.prerelease.split('.')[0].lstrip('-').lower()
        marker = first.split('-')[0]
        if marker in CI_MARKERS:
            return PackageQuality.CI
        if marker in LATEST_MARKERS:
            return PackageQuality.LATEST
        return PackageQuality.PREVIEW

    def __str__(self) -> str:
        if self.build:
            return f"{self.package_string}+{self.build}"
        return self.package_string


@dataclass(frozen=True)
class ArtifactInstance:
    """
    A versioned artifact to publish.

    Identity is (name, version). The candidate map handed to feeds is keyed
    by `key`.
    """
    name: str
    version: PackageVersion

    @classmethod
    def create(cls, name: str, version: str) -> 'ArtifactInstance':
        if not name or not name.strip():
            raise InvalidArgumentError("Artifact name must not be empty")
        return cls(name=name.strip(), version=PackageVersion.parse(version))

    @property
    def key(self) -> str:
        return f"{self.name}/{self.version.package_string}"

    @property
    def quality_labels(self) -> Tuple[str, ...]:
        return self.version.quality.labels()

    def file_name(self, extension: str = 'nupkg') -> str:
        return f"{self.name}.{self.version.package_string}.{extension}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'version': str(self.version),
            'quality': self.version.quality.value,
        }

    def __str__(self) -> str:
        return f"{self.name}/{self.version}"


def parse_artifact_spec(spec: str) -> ArtifactInstance:
    """
    Parse "Name@Version" into an ArtifactInstance.

    Raises:
        InvalidArgumentError: If the separator or either part is missing
    """
    name, sep, version = (spec or '').rpartition('@')
    if not sep or not name or not version:
        raise InvalidArgumentError(f"Expected NAME@VERSION, got '{spec}'")
    return ArtifactInstance.create(name, version)
