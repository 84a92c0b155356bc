import contextlib
import logging
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional

from domain.errors import InstallError
from domain.install_report import InstallReport, InstallResult
from domain.installer import BackendRegistry, PackageBackend
from domain.package_spec import CatalogSnapshot, PackageSpec
from domain.report_repository import ReportRepository
from application.config import default_concurrency

logger = logging.getLogger(__name__)


class PackageInstaller:
    """Installs a catalog snapshot across ecosystem backends."""

    def __init__(
        self,
        registry: BackendRegistry,
        report_repository: Optional[ReportRepository] = None,
        on_result: Optional[Callable[[InstallResult], None]] = None
    ):
        self.registry = registry
        self.report_repository = report_repository
        self.on_result = on_result
        self._domain_locks: Dict[str, threading.Lock] = {}
        self._domain_locks_guard = threading.Lock()

    def install(
        self,
        snapshot: CatalogSnapshot,
        concurrency_limit: Optional[int] = None,
        dry_run: bool = False
    ) -> InstallReport:
        """
        Install every distinct package in the snapshot.

        Each worker takes one package through the idempotence check and the
        install before picking up the next. A failure only marks its own
        package; the report always holds one entry per distinct package, in
        catalog order.
        """
        specs = snapshot.deduplicated()
        if len(specs) < len(snapshot):
            logger.info("Dropped %d duplicate catalog entries", len(snapshot) - len(specs))

        limit = max(1, concurrency_limit or default_concurrency())
        report = InstallReport(dry_run=dry_run)

        if specs:
            logger.info("Installing %d packages with up to %d workers%s",
                        len(specs), limit, " (dry run)" if dry_run else "")
            with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="install") as executor:
                futures = [executor.submit(self._install_one, spec, dry_run) for spec in specs]
                # Collect in submission order so output is deterministic
                for future in futures:
                    result = future.result()
                    report.append(result)
                    if self.on_result:
                        self.on_result(result)

        logger.info("Install run finished: %s", report.summary())

        if not dry_run and self.report_repository:
            try:
                self.report_repository.append(report)
            except OSError as e:
                logger.error("Could not append install report to log: %s", e)

        return report

    def _install_one(self, spec: PackageSpec, dry_run: bool) -> InstallResult:
        started = time.monotonic()

        try:
            backend = self.registry.get_backend(spec.ecosystem)
        except ValueError as e:
            logger.warning("Skipping %s: %s", spec, e)
            return InstallResult.failed(spec, str(e))

        try:
            if backend.is_satisfied(spec):
                logger.info("%s already satisfied", spec)
                return InstallResult.skipped(spec)

            if dry_run:
                return InstallResult.installed(spec, reason="would install")

            logger.info("Installing %s", spec)
            with self._lock_for(backend):
                backend.install(spec)
        except subprocess.TimeoutExpired as e:
            logger.error("Install of %s timed out after %ss", spec, e.timeout)
            return InstallResult.failed(spec, f"timed out after {e.timeout}s", time.monotonic() - started)
        except InstallError as e:
            logger.error("Install of %s failed: %s", spec, e.reason)
            return InstallResult.failed(spec, e.reason, time.monotonic() - started)
        except Exception as e:
            logger.exception("Unexpected error installing %s", spec)
            return InstallResult.failed(spec, f"unexpected error: {e}", time.monotonic() - started)

        duration = time.monotonic() - started
        logger.info("Installed %s in %.1fs", spec, duration)
        return InstallResult.installed(spec, duration)

    def _lock_for(self, backend: PackageBackend):
        """Serialize installs that share a non-reentrant store; no-op otherwise."""
        if not backend.lock_domain:
            return contextlib.nullcontext()
        with self._domain_locks_guard:
            return self._domain_locks.setdefault(backend.lock_domain, threading.Lock())
