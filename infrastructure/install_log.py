import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from domain.install_report import InstallReport
from domain.report_repository import ReportRepository

logger = logging.getLogger(__name__)


class JsonLinesInstallLog(ReportRepository):
    """Append-only install log: one JSON document per completed run."""

    def __init__(self, log_path: Path):
        self.log_path = log_path
        self._lock = threading.Lock()

    def append(self, report: InstallReport) -> None:
        """Append a report as a single line."""
        with self._lock:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(report.to_dict(), sort_keys=True) + "\n")
        logger.debug("Appended install report to %s", self.log_path)

    def latest(self) -> Optional[InstallReport]:
        """Return the last readable report in the log."""
        for line in reversed(self._read_lines()):
            try:
                return InstallReport.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping unreadable install log entry in %s: %s", self.log_path, e)
        return None

    def _read_lines(self) -> List[str]:
        with self._lock:
            if not self.log_path.exists():
                return []
            with open(self.log_path, 'r', encoding='utf-8') as f:
                return [line for line in f.read().splitlines() if line.strip()]
