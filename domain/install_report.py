"""Per-package install outcomes and the report that collects them."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .package_spec import PackageSpec


class InstallStatus(str, Enum):
    INSTALLED = "installed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class InstallResult:
    """Final outcome of one package for one run."""
    spec: PackageSpec
    status: InstallStatus
    reason: Optional[str] = None
    duration: float = 0.0

    @classmethod
    def installed(cls, spec: PackageSpec, duration: float = 0.0, reason: Optional[str] = None) -> "InstallResult":
        return cls(spec, InstallStatus.INSTALLED, reason, duration)

    @classmethod
    def skipped(cls, spec: PackageSpec, reason: str = "already satisfied") -> "InstallResult":
        return cls(spec, InstallStatus.SKIPPED, reason)

    @classmethod
    def failed(cls, spec: PackageSpec, reason: str, duration: float = 0.0) -> "InstallResult":
        return cls(spec, InstallStatus.FAILED, reason, duration)

    def describe(self) -> str:
        """Single status line as printed by the CLI."""
        line = f"{self.status.value:<9} {self.spec}"
        if self.reason:
            line += f" ({self.reason})"
        return line


@dataclass
class InstallReport:
    """
    Append-only, ordered collection of InstallResult for one run.

    Entries follow the de-duplicated catalog order, never completion order.
    """
    results: List[InstallResult] = field(default_factory=list)
    dry_run: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def append(self, result: InstallResult) -> None:
        self.results.append(result)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[InstallResult]:
        return iter(self.results)

    @property
    def failed(self) -> List[InstallResult]:
        return [r for r in self.results if r.status is InstallStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        return not self.failed

    def count(self, status: InstallStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    def summary(self) -> str:
        return (
            f"{self.count(InstallStatus.INSTALLED)} installed, "
            f"{self.count(InstallStatus.SKIPPED)} skipped, "
            f"{self.count(InstallStatus.FAILED)} failed"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "dry_run": self.dry_run,
            "results": [
                {
                    "name": r.spec.name,
                    "ecosystem": r.spec.ecosystem,
                    "version": r.spec.version,
                    "source": r.spec.source,
                    "author": r.spec.author,
                    "status": r.status.value,
                    "reason": r.reason,
                    "duration": round(r.duration, 3),
                }
                for r in self.results
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstallReport":
        results = []
        for entry in data.get("results", []):
            spec = PackageSpec(
                name=entry["name"],
                ecosystem=entry["ecosystem"],
                version=entry.get("version"),
                source=entry.get("source"),
                author=entry.get("author"),
            )
            results.append(InstallResult(
                spec=spec,
                status=InstallStatus(entry["status"]),
                reason=entry.get("reason"),
                duration=entry.get("duration", 0.0),
            ))
        return cls(
            results=results,
            dry_run=data.get("dry_run", False),
            started_at=datetime.fromisoformat(data["started_at"]),
        )
