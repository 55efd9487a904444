"""Unit tests for depbump.utils.version_utils module.

Covers classification of specifier changes for display: major, minor,
patch and prerelease-only changes, downgrades, and specifiers that carry
operators, partial versions or wildcards.
"""

from __future__ import annotations

import pytest

from depbump.utils.version_utils import _extract_version, get_update_type


@pytest.mark.unit
class TestGetUpdateType:
    """Tests for get_update_type main classification function."""

    def test_both_none_returns_unknown(self) -> None:
        assert get_update_type(None, None) == "unknown"

    def test_current_none_returns_new(self) -> None:
        assert get_update_type(None, "^1.0.0") == "new"

    def test_target_none_returns_unknown(self) -> None:
        assert get_update_type("^1.0.0", None) == "unknown"

    @pytest.mark.parametrize(
        "current, target, expected",
        [
            ("^1.0.0", "^2.0.0", "major"),
            ("^1.2", "^2.4", "major"),
            ("1.x", "2.x", "major"),
            ("~1.2.0", "~1.3.0", "minor"),
            (">=1.2.0 <2.0.0", ">=1.4.0", "minor"),
            ("~1.2.0", "~1.2.3", "patch"),
            ("1.0.0", "1.0.1", "patch"),
            ("1.0.0-beta.0", "1.0.0-task-42.0", "update"),
            ("1.0.0-beta.0", "1.0.0", "update"),
        ],
    )
    def test_classifies_change(self, current: str, target: str, expected: str) -> None:
        assert get_update_type(current, target) == expected

    def test_same_version_returns_same(self) -> None:
        """Operators do not count as a change."""
        assert get_update_type("^1.2.3", "~1.2.3") == "same"

    def test_lower_target_returns_downgrade(self) -> None:
        assert get_update_type("^2.0.0", "^1.9.9") == "downgrade"

    def test_unparseable_returns_unknown(self) -> None:
        assert get_update_type("latest", "next") == "unknown"
        assert get_update_type("^1.0.0", "github:user/repo") == "unknown"


@pytest.mark.unit
class TestExtractVersion:
    """Tests for _extract_version helper."""

    def test_fills_missing_parts(self) -> None:
        assert str(_extract_version("^1.2")) == "1.2.0"
        assert str(_extract_version("1")) == "1.0.0"

    def test_wildcards_become_zero(self) -> None:
        assert str(_extract_version("1.x.x")) == "1.0.0"
        assert str(_extract_version("2.*")) == "2.0.0"

    def test_keeps_prerelease(self) -> None:
        assert str(_extract_version(">=3.0.0-rc.1")) == "3.0.0-rc.1"

    def test_returns_none_without_digits(self) -> None:
        assert _extract_version("latest") is None
