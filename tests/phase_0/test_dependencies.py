"""Dependency alignment between pyproject.toml and the requirements files."""

from __future__ import annotations

from pathlib import Path

import tomllib


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _read_requirements(path: Path) -> list[str]:
    """Load requirement strings from a file, ignoring comments and blanks."""

    return [
        line.strip()
        for line in path.read_text().splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]


def _pyproject() -> dict:
    return tomllib.loads((PROJECT_ROOT / "pyproject.toml").read_text())


def test_requirements_match_pyproject_dependencies() -> None:
    pyproject_deps = sorted(_pyproject()["project"]["dependencies"])

    base_requirements = _read_requirements(PROJECT_ROOT / "requirements" / "base.txt")
    assert sorted(base_requirements) == pyproject_deps


def test_dev_requirements_match_optional_group() -> None:
    expected_dev = sorted(_pyproject()["project"]["optional-dependencies"]["dev"])

    dev_requirements = _read_requirements(PROJECT_ROOT / "requirements" / "dev.txt")
    assert dev_requirements[0] == "-r base.txt"
    assert sorted(dev_requirements[1:]) == expected_dev


def test_bcrypt_is_pinned_for_passlib() -> None:
    """passlib 1.7 cannot drive bcrypt releases from 4.1 onwards."""

    bcrypt_specs = [dep for dep in _pyproject()["project"]["dependencies"] if dep.startswith("bcrypt")]
    assert bcrypt_specs == ["bcrypt>=4.0.1,<4.1"]
