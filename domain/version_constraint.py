"""
Cargo-style version requirement matching (pure, no I/O).

Supported requirement forms, combinable with commas:

    1.2.3 / ^1.2.3   caret: compatible updates (left-most non-zero part fixed)
    ~1.2.3           tilde: patch updates only (minor updates for ``~1``)
    =1.2.3           exact (a partial ``=1.2`` matches any 1.2.x)
    >=1.2 >1 <2 <=2  comparisons
    *                any version

A pre-release such as ``1.3.0-alpha.1`` only satisfies a requirement in
which some comparator names a pre-release of the same ``1.3.0``.
"""

import re
from typing import List, NamedTuple, Optional, Tuple

Version = Tuple[int, int, int]

_PRERELEASE = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_REQUIREMENT_RE = re.compile(
    r"^(\^|~|=|>=|<=|>|<)?\s*v?(\d+)(?:\.(\d+|\*))?(?:\.(\d+|\*))?"
    r"(?:-(" + _PRERELEASE + r"))?(?:\+[0-9A-Za-z.-]+)?$"
)


class _Comparator(NamedTuple):
    op: str
    parts: List[int]
    prerelease: Optional[str]


def _split_version(text: str) -> Optional[Tuple[Version, Optional[str]]]:
    core, _, prerelease = text.strip().lstrip("v").split("+", 1)[0].partition("-")
    parts = core.split(".")
    if len(parts) > 3:
        return None
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return None
    return _pad(numbers), prerelease or None


def parse_version(text: str) -> Optional[Version]:
    """Parse ``v1.2.3-beta+build`` into ``(1, 2, 3)``; None when unparseable."""
    parsed = _split_version(text)
    return parsed[0] if parsed else None


def _pad(parts: List[int]) -> Version:
    padded = parts + [0] * (3 - len(parts))
    return (padded[0], padded[1], padded[2])


def _bump(parts: List[int], index: int) -> Version:
    bumped = parts[:index + 1]
    bumped[index] += 1
    return _pad(bumped)


def _sort_key(version: Version, prerelease: Optional[str] = None) -> tuple:
    # 1.0.0-alpha < 1.0.0-alpha.1 < 1.0.0-beta < 1.0.0; numeric identifiers sort below names
    if not prerelease:
        return version + (1,)
    identifiers = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in prerelease.split("."))
    return version + (0, identifiers)


def _parse_comparator(text: str) -> Optional[_Comparator]:
    text = text.strip()
    if text in ("", "*"):
        return None

    match = _REQUIREMENT_RE.match(text)
    if not match:
        raise ValueError(f"Invalid version requirement: {text!r}")

    parts = [int(match.group(2))]
    for group in (match.group(3), match.group(4)):
        if group is None or group == "*":
            break
        parts.append(int(group))

    prerelease = match.group(5)
    if prerelease and len(parts) < 3:
        raise ValueError(f"Invalid version requirement: {text!r}")
    return _Comparator(match.group(1) or "^", parts, prerelease)


def _matches(key: tuple, comparator: _Comparator) -> bool:
    op, parts, prerelease = comparator
    lower = _sort_key(_pad(parts), prerelease)

    def bumped(index: int) -> tuple:
        return _sort_key(_bump(parts, index))

    if op == ">=":
        return key >= lower
    if op == ">":
        if len(parts) < 3:
            return key >= bumped(len(parts) - 1)
        return key > lower
    if op == "<":
        return key < lower
    if op == "<=":
        if len(parts) < 3:
            return key < bumped(len(parts) - 1)
        return key <= lower
    if op == "=":
        if len(parts) < 3:
            return lower <= key < bumped(len(parts) - 1)
        return key == lower
    if op == "~":
        upper = bumped(0) if len(parts) == 1 else bumped(1)
        return lower <= key < upper

    # caret
    if parts[0] > 0 or len(parts) == 1:
        upper = bumped(0)
    elif len(parts) == 2 or parts[1] > 0:
        upper = bumped(1)
    else:
        upper = bumped(2)
    return lower <= key < upper


def satisfies(installed: str, requirement: Optional[str]) -> bool:
    """
    Return True when an installed version string meets the requirement.

    Raises:
        ValueError: If the requirement is not a valid version requirement
    """
    if not requirement:
        return True

    comparators = [c for c in (_parse_comparator(p) for p in requirement.split(",")) if c is not None]

    parsed = _split_version(installed)
    if parsed is None:
        return False
    version, prerelease = parsed

    if prerelease and not any(c.prerelease and _pad(c.parts) == version for c in comparators):
        return False

    key = _sort_key(version, prerelease)
    return all(_matches(key, c) for c in comparators)


def pinned_version(requirement: Optional[str]) -> Optional[str]:
    """
    The exact version a requirement pins, if any.

    Backends that only accept exact versions (apt, go) use this; a bare
    ``1.2.3`` counts as a pin there, as it does for ``cargo install``.
    """
    if not requirement:
        return None
    requirement = requirement.strip()
    if "," in requirement:
        return None
    match = _REQUIREMENT_RE.match(requirement)
    if not match or match.group(1) not in (None, "="):
        return None
    if match.group(4) is None or match.group(4) == "*":
        return None
    return requirement.lstrip("=").strip()


def cargo_requirement(requirement: Optional[str]) -> Optional[str]:
    """
    The requirement as ``cargo install --version`` applies it.

    cargo installs a bare full version (``1.2.3``) exactly and refuses a bare
    partial one (``1.2``), so the first becomes ``=1.2.3`` and the second
    ``^1.2``. Requirements with an operator, a wildcard or a comma pass
    through unchanged.
    """
    if not requirement:
        return None
    requirement = requirement.strip()
    match = _REQUIREMENT_RE.match(requirement)
    if not match or match.group(1) is not None or "*" in requirement:
        return requirement
    bare = requirement.lstrip("v")
    if match.group(4) is not None:
        return f"={bare}"
    return f"^{bare}"
