import glob
import logging
import subprocess
from pathlib import Path
from typing import Optional

from application.config import default_cargo_home
from domain.errors import RenderError
from domain.version_constraint import parse_version

logger = logging.getLogger(__name__)


class GlowRenderer:
    """Renders markdown documents with the external `glow` program."""

    def __init__(self, executable: str = "glow", style: str = "dark", width: int = 100, timeout: float = 10):
        self.executable = executable
        self.style = style
        self.width = width
        self.timeout = timeout

    def render(self, document: Path) -> str:
        """
        Render a document to a string for display in a remote session.

        Raises:
            RenderError: If the document is missing or glow fails for any reason
        """
        if not Path(document).is_file():
            raise RenderError(f"Document not found: {document}")

        cmd = [self.executable, "-s", self.style, "-w", str(self.width), str(document)]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise RenderError(f"{self.executable} is not installed")
        except subprocess.TimeoutExpired:
            raise RenderError(f"{self.executable} timed out after {self.timeout}s")
        except (OSError, ValueError) as e:
            # e.g. not executable, or output that is not valid UTF-8
            raise RenderError(f"{self.executable} could not be run: {e}")

        if result.returncode != 0:
            raise RenderError(f"{self.executable} exited with {result.returncode}: {result.stderr.strip()}")

        return result.stdout

    def page(self, document: Path) -> int:
        """Show a document in glow's pager on the local terminal and return its exit code."""
        if not Path(document).is_file():
            raise RenderError(f"Document not found: {document}")

        try:
            return subprocess.run([self.executable, str(document), "-p"]).returncode
        except FileNotFoundError:
            raise RenderError(f"{self.executable} is not installed")
        except OSError as e:
            raise RenderError(f"{self.executable} could not be run: {e}")


def find_package_readme(package_name: str, cargo_home: Optional[Path] = None) -> Optional[Path]:
    """Locate a crate's README.md in the local cargo registry sources."""
    cargo_home = cargo_home or default_cargo_home()
    pattern = str(cargo_home / "registry" / "src" / "*" / f"{glob.escape(package_name)}-*" / "README.md")
    prefix = f"{package_name}-"
    candidates = []
    for match in glob.glob(pattern):
        # "foo-1.2.0" but not "foo-bar-0.1.0"
        version = parse_version(Path(match).parent.name[len(prefix):])
        if version is not None:
            candidates.append((version, Path(match)))
    if not candidates:
        logger.debug("No README found for %s under %s", package_name, cargo_home)
        return None
    return max(candidates)[1]
