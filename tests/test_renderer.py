import subprocess
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import Mock, patch

from domain.errors import RenderError
from infrastructure.renderer import GlowRenderer, find_package_readme


class TestGlowRenderer(unittest.TestCase):
    def setUp(self):
        self.tmp = TemporaryDirectory()
        self.document = Path(self.tmp.name) / "ONBOARDING.md"
        self.document.write_text("# Welcome to the Cargo Cult!\n", encoding="utf-8")
        self.renderer = GlowRenderer(width=80)

    def tearDown(self):
        self.tmp.cleanup()

    @patch('subprocess.run')
    def test_render_returns_glow_output(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="rendered", stderr="")

        assert self.renderer.render(self.document) == "rendered"

        cmd = mock_run.call_args[0][0]
        assert cmd == ["glow", "-s", "dark", "-w", "80", str(self.document)]
        assert mock_run.call_args[1]["timeout"] == 10

    @patch('subprocess.run')
    def test_missing_document(self, mock_run):
        with self.assertRaises(RenderError):
            self.renderer.render(Path(self.tmp.name) / "missing.md")
        mock_run.assert_not_called()

    @patch('subprocess.run', side_effect=FileNotFoundError("glow"))
    def test_missing_executable(self, mock_run):
        with self.assertRaises(RenderError) as ctx:
            self.renderer.render(self.document)
        assert "not installed" in str(ctx.exception)

    @patch('subprocess.run', side_effect=subprocess.TimeoutExpired("glow", 10))
    def test_timeout(self, mock_run):
        with self.assertRaises(RenderError):
            self.renderer.render(self.document)

    @patch('subprocess.run')
    def test_non_zero_exit(self, mock_run):
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="unknown style\n")

        with self.assertRaises(RenderError) as ctx:
            self.renderer.render(self.document)
        assert "unknown style" in str(ctx.exception)

    def test_non_executable_renderer(self):
        executable = Path(self.tmp.name) / "glow"
        executable.write_text("#!/bin/sh\necho hi\n", encoding="utf-8")
        executable.chmod(0o644)
        renderer = GlowRenderer(executable=str(executable))

        with self.assertRaises(RenderError):
            renderer.render(self.document)
        with self.assertRaises(RenderError):
            renderer.page(self.document)

    @patch('subprocess.run', side_effect=UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"))
    def test_undecodable_output(self, mock_run):
        with self.assertRaises(RenderError):
            self.renderer.render(self.document)

    @patch('subprocess.run')
    def test_page_uses_pager(self, mock_run):
        mock_run.return_value = Mock(returncode=0)

        assert self.renderer.page(self.document) == 0
        mock_run.assert_called_once_with(["glow", str(self.document), "-p"])


class TestFindPackageReadme(unittest.TestCase):
    def setUp(self):
        self.tmp = TemporaryDirectory()
        self.cargo_home = Path(self.tmp.name)
        self.registry = self.cargo_home / "registry" / "src" / "index.crates.io-6f17d22bba15001f"

    def tearDown(self):
        self.tmp.cleanup()

    def add_crate(self, dirname):
        crate = self.registry / dirname
        crate.mkdir(parents=True)
        readme = crate / "README.md"
        readme.write_text(f"# {dirname}\n", encoding="utf-8")
        return readme

    def test_picks_highest_version(self):
        self.add_crate("bat-0.9.0")
        newest = self.add_crate("bat-0.24.0")
        self.add_crate("bat-0.23.1")

        assert find_package_readme("bat", self.cargo_home) == newest

    def test_ignores_crates_sharing_a_prefix(self):
        self.add_crate("foo-bar-2.0.0")
        own = self.add_crate("foo-1.0.0")

        assert find_package_readme("foo", self.cargo_home) == own

    def test_not_found(self):
        self.add_crate("foo-bar-2.0.0")

        assert find_package_readme("foo", self.cargo_home) is None
        assert find_package_readme("ripgrep", self.cargo_home) is None
