"""Plain-text onboarding content shown to every session."""

from typing import List, Optional

from domain.install_report import InstallReport, InstallStatus
from domain.session import SessionContext

BANNER = "Welcome to the Cargo Cult!"


def welcome_lines(context: SessionContext, session_timeout: Optional[float]) -> List[str]:
    lines = []
    package = context.highlighted_package
    if package:
        author = _author_of(package, context.last_report)
        owner = f"{author}'s" if author else "this"
        lines.append(f"Welcome! Run '{package}' to test out {owner} CLI! "
                     f"Or, run 'readme {package}' to view the readme.")
    else:
        lines.append(f"Welcome, {context.principal}! Run 'readme' to read the onboarding guide again.")

    if session_timeout:
        minutes = max(1, int(session_timeout // 60))
        lines.append(f"This session will self-destruct in {minutes} minutes. Run 'exit' to exit.")
    else:
        lines.append("Run 'exit' to exit.")
    lines.append("psst: all the other projects are installed here, so feel free to try them out.")
    return lines


def fallback_text() -> str:
    """Text-only onboarding used when the renderer is unavailable."""
    return "\n".join([
        "",
        f"  {BANNER}",
        "  " + "=" * len(BANNER),
        "",
        "  (The formatted guide could not be displayed; run 'readme' to try again.)",
        "",
    ])


def report_summary(report: Optional[InstallReport]) -> List[str]:
    if report is None:
        return ["No package install has been recorded for this machine yet."]

    lines = [f"Packages ({report.started_at:%Y-%m-%d %H:%M} UTC): {report.summary()}"]
    for result in report.failed:
        lines.append(f"  unavailable: {result.spec.name} ({result.reason or 'unknown error'})")
    return lines


def _author_of(package: str, report: Optional[InstallReport]) -> Optional[str]:
    if report is None:
        return None
    for result in report:
        if result.spec.name == package and result.status is not InstallStatus.FAILED:
            return result.spec.author
    return None
