import pytest

from domain.version_constraint import cargo_requirement, parse_version, pinned_version, satisfies


class TestParseVersion:
    @pytest.mark.parametrize("text,expected", [
        ("1.2.3", (1, 2, 3)),
        ("v0.24.0", (0, 24, 0)),
        ("1.2", (1, 2, 0)),
        ("2", (2, 0, 0)),
        ("1.0.0-beta.1", (1, 0, 0)),
        ("1.2.3+build.5", (1, 2, 3)),
    ])
    def test_valid(self, text, expected):
        assert parse_version(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "1.2.3.4", "1.x"])
    def test_invalid(self, text):
        assert parse_version(text) is None


class TestSatisfies:
    def test_no_requirement_accepts_anything(self):
        assert satisfies("0.0.1", None) is True
        assert satisfies("9.9.9", "") is True
        assert satisfies("9.9.9", "*") is True

    @pytest.mark.parametrize("installed,requirement,expected", [
        ("1.2.3", "1.2.3", True),
        ("1.9.0", "1.2.3", True),
        ("2.0.0", "1.2.3", False),
        ("1.2.2", "^1.2.3", False),
        ("0.2.9", "0.2.3", True),
        ("0.3.0", "0.2.3", False),
        ("0.0.3", "^0.0.3", True),
        ("0.0.4", "^0.0.3", False),
        ("0.9.0", "0", True),
        ("1.0.0", "0", False),
    ])
    def test_caret(self, installed, requirement, expected):
        assert satisfies(installed, requirement) is expected

    @pytest.mark.parametrize("installed,requirement,expected", [
        ("1.2.9", "~1.2.3", True),
        ("1.3.0", "~1.2.3", False),
        ("1.9.0", "~1", True),
        ("2.0.0", "~1", False),
    ])
    def test_tilde(self, installed, requirement, expected):
        assert satisfies(installed, requirement) is expected

    @pytest.mark.parametrize("installed,requirement,expected", [
        ("1.2.3", "=1.2.3", True),
        ("1.2.4", "=1.2.3", False),
        ("1.2.7", "=1.2", True),
        ("1.3.0", "=1.2", False),
        ("1.5.0", ">=1.2", True),
        ("1.1.9", ">=1.2", False),
        ("2.0.0", ">1", True),
        ("1.9.9", ">1", False),
        ("1.9.9", "<2", True),
        ("1.2.9", "<=1.2", True),
        ("1.3.0", "<=1.2", False),
    ])
    def test_comparisons(self, installed, requirement, expected):
        assert satisfies(installed, requirement) is expected

    def test_comma_separated_requirements_all_apply(self):
        assert satisfies("1.5.0", ">=1.2, <2") is True
        assert satisfies("2.1.0", ">=1.2, <2") is False

    def test_unparseable_installed_version_never_satisfies(self):
        assert satisfies("unknown", "1.0") is False

    def test_invalid_requirement_raises(self):
        with pytest.raises(ValueError):
            satisfies("1.0.0", "latest-and-greatest")


class TestPinnedVersion:
    def test_full_versions_pin(self):
        assert pinned_version("1.5.1") == "1.5.1"
        assert pinned_version("=1.5.1") == "1.5.1"

    def test_ranges_and_partials_do_not_pin(self):
        assert pinned_version(None) is None
        assert pinned_version("1.5") is None
        assert pinned_version("^1.5.1") is None
        assert pinned_version(">=1.0.0") is None
        assert pinned_version(">=1.0.0, <2") is None


class TestPreReleases:
    @pytest.mark.parametrize("requirement", ["=1.3.0", "^1.2", "1.3.0", ">=1.0", "*", "<2"])
    def test_pre_release_does_not_match_release_requirements(self, requirement):
        assert satisfies("1.3.0-alpha.1", requirement) is False

    @pytest.mark.parametrize("installed,requirement,expected", [
        ("1.3.0-alpha.1", "=1.3.0-alpha.1", True),
        ("1.3.0-alpha.2", "^1.3.0-alpha.1", True),
        ("1.3.0-alpha.1", "^1.3.0-alpha.2", False),
        ("1.3.0-beta", ">=1.3.0-alpha.10", True),
        ("1.3.0-alpha.9", ">=1.3.0-alpha.10", False),
        ("1.3.0", "^1.3.0-alpha.1", True),
        ("1.3.0-alpha.1", ">=1.3.0-alpha, <1.3.0", True),
    ])
    def test_pre_release_on_named_version(self, installed, requirement, expected):
        assert satisfies(installed, requirement) is expected

    def test_pre_release_of_another_version_never_matches(self):
        assert satisfies("1.4.0-alpha.1", ">=1.3.0-alpha.1") is False

    def test_build_metadata_is_ignored(self):
        assert satisfies("1.3.0+build.7", "=1.3.0") is True

    def test_pre_release_on_partial_version_is_invalid(self):
        with pytest.raises(ValueError):
            satisfies("1.0.0", "1.3-alpha")


class TestCargoRequirement:
    @pytest.mark.parametrize("requirement,expected", [
        (None, None),
        ("1.2.3", "=1.2.3"),
        ("v1.2.3", "=1.2.3"),
        ("1.2", "^1.2"),
        ("1", "^1"),
        ("1.3.0-alpha.1", "=1.3.0-alpha.1"),
        ("^1.2.3", "^1.2.3"),
        ("~1.2", "~1.2"),
        (">=1.0, <2", ">=1.0, <2"),
        ("1.*", "1.*"),
    ])
    def test_cargo_reading_of_requirements(self, requirement, expected):
        assert cargo_requirement(requirement) == expected
