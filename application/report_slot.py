import threading
from typing import Optional

from domain.install_report import InstallReport


class ReportSlot:
    """
    Process-wide publication point for the last InstallReport.

    Written once when the gateway starts; every session and the status API
    read the same immutable report afterwards.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._report: Optional[InstallReport] = None

    def publish(self, report: Optional[InstallReport]) -> None:
        with self._lock:
            if self._report is not None:
                raise RuntimeError("An install report has already been published")
            self._report = report

    def get(self) -> Optional[InstallReport]:
        with self._lock:
            return self._report
