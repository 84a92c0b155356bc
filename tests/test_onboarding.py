from application.onboarding import BANNER, fallback_text, report_summary, welcome_lines
from domain.install_report import InstallReport, InstallResult
from domain.package_spec import PackageSpec
from domain.session import SessionContext


class TestWelcomeLines:
    def test_highlighted_package_without_known_author(self):
        context = SessionContext(session_id=1, principal="[ripgrep]")

        lines = welcome_lines(context, 1800)

        assert lines[0] == ("Welcome! Run 'ripgrep' to test out this CLI! "
                            "Or, run 'readme ripgrep' to view the readme.")
        assert lines[1] == "This session will self-destruct in 30 minutes. Run 'exit' to exit."

    def test_failed_package_does_not_credit_author(self):
        report = InstallReport()
        report.append(InstallResult.failed(PackageSpec("bat", author="David"), "boom"))
        context = SessionContext(session_id=1, principal="[bat]", last_report=report)

        assert "this CLI" in welcome_lines(context, None)[0]

    def test_no_time_limit(self):
        lines = welcome_lines(SessionContext(session_id=1, principal="fiona"), None)

        assert lines[1] == "Run 'exit' to exit."
        assert lines[-1].startswith("psst:")


class TestFallbackAndSummary:
    def test_fallback_text_carries_banner(self):
        text = fallback_text()

        assert BANNER in text
        assert "run 'readme'" in text

    def test_summary_of_clean_run(self):
        report = InstallReport()
        report.append(InstallResult.skipped(PackageSpec("bat")))

        lines = report_summary(report)

        assert len(lines) == 1
        assert lines[0].endswith("0 installed, 1 skipped, 0 failed")
