"""Domain model for catalog entries."""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import SchemaError


CARGO = "cargo"
GO = "go"
APT = "apt"
GIT = "git"

KNOWN_ECOSYSTEMS = (CARGO, GO, APT, GIT)


@dataclass(frozen=True)
class PackageSpec:
    """One installable unit from the catalog."""
    name: str
    ecosystem: str = CARGO
    version: Optional[str] = None  # cargo-style requirement, None means any
    source: Optional[str] = None  # crate name, module path, apt name or git URL
    author: Optional[str] = None
    description: Optional[str] = None

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.name, self.ecosystem)

    @property
    def locator(self) -> str:
        """Where the backend fetches the package from."""
        return self.source or self.name

    def __str__(self) -> str:
        if self.version:
            return f"{self.ecosystem}:{self.name}@{self.version}"
        return f"{self.ecosystem}:{self.name}"


@dataclass(frozen=True)
class CatalogSnapshot:
    """Ordered packages fetched for one invocation, as returned by the service."""
    packages: Tuple[PackageSpec, ...] = ()
    schema_errors: Tuple[SchemaError, ...] = ()

    def __len__(self) -> int:
        return len(self.packages)

    def __iter__(self):
        return iter(self.packages)

    def deduplicated(self) -> List[PackageSpec]:
        """Drop repeated identities, keeping the first occurrence in place."""
        seen = set()
        unique = []
        for spec in self.packages:
            if spec.identity in seen:
                continue
            seen.add(spec.identity)
            unique.append(spec)
        return unique

