"""
Package source domain object for feedpush.

A PackageSource is the location record (feed url or directory) that backs
a feed. Two sources are the same source when their normalized locations
are equal.
"""

from dataclasses import dataclass
from typing import Dict, Any


REMOTE_SCHEMES = ('http://', 'https://')


def is_remote_location(location: str) -> bool:
    """True when location is an http(s) url rather than a filesystem path."""
    return location.lower().startswith(REMOTE_SCHEMES)


@dataclass(frozen=True)
class PackageSource:
    """A named package source."""
    name: str
    location: str   # v3 index url or absolute directory path
    is_local: bool = False

    @classmethod
    def from_location(cls, name: str, location: str) -> 'PackageSource':
        """Create a source, deciding locality from the location itself."""
        return cls(name=name, location=location, is_local=not is_remote_location(location))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'location': self.location,
            'is_local': self.is_local,
        }
