import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from .errors import InstallError
from .package_spec import APT, CARGO, GIT, GO, PackageSpec
from .version_constraint import cargo_requirement, pinned_version, satisfies

logger = logging.getLogger(__name__)

# "ripgrep v14.1.0:" or "tool v0.1.0 (https://github.com/o/tool?tag=v0.1.0#1a2b3c4d):"
_CARGO_LIST_RE = re.compile(r"^(?P<name>\S+) v(?P<version>[^\s:]+)(?: \((?P<source>.+)\))?:$")


class PackageBackend(ABC):
    """Abstract base class for ecosystem install backends."""

    # Name of a shared store that must not be touched by two installs at once.
    lock_domain: Optional[str] = None

    def __init__(self, timeout: Optional[float] = None, custom_args: Optional[List[str]] = None):
        """Initialize with an optional per-command timeout and extra install arguments."""
        self.timeout = timeout
        self.custom_args = custom_args or []

    @property
    @abstractmethod
    def ecosystem(self) -> str:
        """Return the ecosystem tag this backend serves (e.g. 'cargo', 'apt')."""
        pass

    @abstractmethod
    def is_satisfied(self, spec: PackageSpec) -> bool:
        """Return True if an installed version already meets the spec."""
        pass

    @abstractmethod
    def install(self, spec: PackageSpec) -> None:
        """Install the package, raising InstallError on failure."""
        pass

    def _run(self, cmd: List[str], env: Optional[Dict[str, str]] = None) -> subprocess.CompletedProcess:
        """
        Run a backend command with the configured timeout.

        subprocess.TimeoutExpired is left to the caller so a hung backend is
        reported as a timeout rather than a generic failure.
        """
        logger.debug("Running: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise InstallError(cmd[0], f"{cmd[0]} executable not found")

    def _check(self, spec: PackageSpec, cmd: List[str], env: Optional[Dict[str, str]] = None) -> None:
        result = self._run(cmd, env=env)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            detail = stderr[-1] if stderr else f"exit code {result.returncode}"
            raise InstallError(spec.name, f"{cmd[0]} {cmd[1]} failed: {detail}")


def parse_cargo_install_list(output: str) -> Dict[str, Tuple[str, Optional[str]]]:
    """Map crate name to (version, source) from `cargo install --list` output."""
    crates = {}
    for line in output.splitlines():
        if not line or line[0].isspace():
            continue
        match = _CARGO_LIST_RE.match(line.strip())
        if match:
            crates[match.group("name")] = (match.group("version"), match.group("source"))
    return crates


def _git_location(url: str) -> Tuple[str, Dict[str, List[str]]]:
    """Split "https://host/o/tool.git?tag=v1#rev" into a comparable location and its query."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    if path.endswith(".git"):
        path = path[:-len(".git")]
    return f"{parts.scheme}://{parts.netloc.lower()}{path}", parse_qs(parts.query)


class CargoBackend(PackageBackend):
    """Installer for crates published to crates.io."""

    @property
    def ecosystem(self) -> str:
        return CARGO

    def installed_crates(self) -> Dict[str, Tuple[str, Optional[str]]]:
        result = self._run(["cargo", "install", "--list"])
        if result.returncode != 0:
            raise InstallError("cargo", f"cargo install --list failed: {result.stderr.strip()}")
        return parse_cargo_install_list(result.stdout)

    def is_satisfied(self, spec: PackageSpec) -> bool:
        installed = self.installed_crates().get(spec.locator)
        if installed is None:
            return False
        version, _ = installed
        return satisfies(version, cargo_requirement(spec.version))

    def install(self, spec: PackageSpec) -> None:
        cmd = ["cargo", "install", spec.locator]
        if spec.version:
            cmd.extend(["--version", cargo_requirement(spec.version)])
        cmd.extend(self.custom_args)
        self._check(spec, cmd)


class SourceBuildBackend(CargoBackend):
    """Installer that builds a crate from its git repository."""

    @property
    def ecosystem(self) -> str:
        return GIT

    def is_satisfied(self, spec: PackageSpec) -> bool:
        installed = self.installed_crates().get(spec.name)
        if installed is None:
            return False
        _, source = installed
        if not source:
            return False
        location, query = _git_location(source)
        if location != _git_location(spec.locator)[0]:
            return False
        if spec.version:
            return query.get("tag") == [spec.version]
        return True

    def install(self, spec: PackageSpec) -> None:
        # version is a git tag for source builds
        cmd = ["cargo", "install", "--git", spec.locator, spec.name]
        if spec.version:
            cmd.extend(["--tag", spec.version])
        cmd.extend(self.custom_args)
        self._check(spec, cmd)


class GoBackend(PackageBackend):
    """Installer for Go modules via `go install`."""

    def __init__(self, gopath: Optional[str] = None, timeout: Optional[float] = None,
                 custom_args: Optional[List[str]] = None):
        super().__init__(timeout, custom_args)
        self.gopath = gopath or os.environ.get("GOPATH") or str(Path.home() / "go")

    @property
    def ecosystem(self) -> str:
        return GO

    def binary_path(self, spec: PackageSpec) -> Path:
        segments = [s for s in spec.locator.split("@", 1)[0].split("/") if s]
        # github.com/o/tool/v2 installs as "tool"
        if len(segments) > 1 and re.fullmatch(r"v\d+", segments[-1]):
            segments.pop()
        return Path(self.gopath) / "bin" / segments[-1]

    def module_version(self, binary: Path) -> Optional[str]:
        result = self._run(["go", "version", "-m", str(binary)])
        if result.returncode != 0:
            return None
        for line in result.stdout.splitlines():
            fields = line.split()
            if len(fields) >= 3 and fields[0] == "mod":
                return fields[2]
        return None

    def is_satisfied(self, spec: PackageSpec) -> bool:
        binary = self.binary_path(spec)
        if not binary.exists():
            return False
        if not spec.version:
            return True
        version = self.module_version(binary)
        if version is None:
            return False
        pinned = pinned_version(spec.version)
        if pinned:
            return version.lstrip("v") == pinned.lstrip("v")
        return satisfies(version, spec.version)

    def install(self, spec: PackageSpec) -> None:
        pinned = pinned_version(spec.version)
        target = f"v{pinned.lstrip('v')}" if pinned else "latest"
        env = os.environ.copy()
        env["GOPATH"] = self.gopath
        cmd = ["go", "install"] + self.custom_args + [f"{spec.locator}@{target}"]
        self._check(spec, cmd, env=env)


class AptBackend(PackageBackend):
    """Installer for OS packages through apt/dpkg."""

    lock_domain = "dpkg"

    @property
    def ecosystem(self) -> str:
        return APT

    def installed_version(self, spec: PackageSpec) -> Optional[str]:
        result = self._run(["dpkg-query", "-W", "-f=${Status} ${Version}", spec.locator])
        if result.returncode != 0:
            return None
        fields = result.stdout.split()
        # "install ok installed 1.2-3"
        if len(fields) < 4 or fields[2] != "installed":
            return None
        return fields[3]

    def is_satisfied(self, spec: PackageSpec) -> bool:
        version = self.installed_version(spec)
        if version is None:
            return False
        if not spec.version:
            return True
        try:
            return satisfies(version, spec.version)
        except ValueError:
            # native apt version string such as "1.2-3ubuntu1"
            return version == spec.version

    def install(self, spec: PackageSpec) -> None:
        target = spec.locator
        if spec.version:
            target = f"{spec.locator}={pinned_version(spec.version) or spec.version}"
        env = os.environ.copy()
        env["DEBIAN_FRONTEND"] = "noninteractive"
        cmd = ["apt-get", "install", "-y", "--no-install-recommends"] + self.custom_args + [target]
        self._check(spec, cmd, env=env)


class BackendRegistry:
    """Selects the backend for a package by its ecosystem tag."""

    def __init__(self, backends: Optional[Iterable[PackageBackend]] = None):
        self._backends: Dict[str, PackageBackend] = {}
        for backend in backends or []:
            self.register(backend)

    @classmethod
    def default(cls, timeout: Optional[float] = None) -> "BackendRegistry":
        return cls([
            CargoBackend(timeout=timeout),
            GoBackend(timeout=timeout),
            AptBackend(timeout=timeout),
            SourceBuildBackend(timeout=timeout),
        ])

    def register(self, backend: PackageBackend) -> None:
        self._backends[backend.ecosystem] = backend

    @property
    def ecosystems(self) -> List[str]:
        return sorted(self._backends)

    def get_backend(self, ecosystem: str) -> PackageBackend:
        """Return the backend for the ecosystem, raising ValueError if none is registered."""
        try:
            return self._backends[ecosystem]
        except KeyError:
            raise ValueError(f"Unsupported ecosystem: {ecosystem}")
