from abc import ABC, abstractmethod
from typing import Optional

from .install_report import InstallReport


class ReportRepository(ABC):
    """
    Abstract append-only store for install reports.

    One record is appended per completed installer run. Sessions only ever
    read the most recent record; nothing is rewritten or deleted.
    """

    @abstractmethod
    def append(self, report: InstallReport) -> None:
        """
        Append a finished report.

        Args:
            report: The report of a completed, non-dry run

        Raises:
            OSError: If the underlying sink cannot be written
        """
        pass

    @abstractmethod
    def latest(self) -> Optional[InstallReport]:
        """
        Return the most recently appended report.

        Returns:
            The last report, or None if no run has been recorded yet.
            Corrupt trailing records are skipped in favour of earlier ones.
        """
        pass
