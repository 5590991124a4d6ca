"""Unit tests for model-reported file path sanitization."""

from __future__ import annotations

import re

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from agent_guard.constants import MAX_FILE_PATH_CHARS
from agent_guard.validation import UNKNOWN_PATH, sanitize_file_path

_DRIVE = re.compile(r"^[a-zA-Z]:")

_PATHISH = st.text(alphabet=st.sampled_from("abcXYZ:./\\?\x00\x1f "), max_size=80)


def test_parent_traversal_is_removed_and_path_made_relative() -> None:
    result = sanitize_file_path("../../../etc/passwd")

    assert ".." not in result
    assert not result.startswith("/")
    assert result == "etc/passwd"


def test_drive_letter_with_forward_slash_is_stripped_exactly() -> None:
    assert sanitize_file_path("C:/Windows/System32/config") == "Windows/System32/config"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("C:\\Windows\\win.ini", "Windows/win.ini"),
        ("d:relative\\file.py", "relative/file.py"),
        ("\\\\server\\share\\secret.txt", "share/secret.txt"),
        ("//server/share/secret.txt", "share/secret.txt"),
        ("\\\\?\\C:\\Windows\\System32", "Windows/System32"),
        ("/C:/Windows/file", "Windows/file"),
        ("/absolute/path.py", "absolute/path.py"),
        ("src//pkg///module.py", "src/pkg/module.py"),
        ("src/..\\../module.py", "src/module.py"),
        ("src/app.py", "src/app.py"),
    ],
)
def test_known_hostile_shapes(raw: str, expected: str) -> None:
    assert sanitize_file_path(raw) == expected


@pytest.mark.parametrize("raw", ["", "/", "..", "../..", "C:", "\\\\", None, 42, ["a"]])
def test_empty_results_become_unknown(raw: object) -> None:
    assert sanitize_file_path(raw) == UNKNOWN_PATH


def test_control_characters_are_removed() -> None:
    assert sanitize_file_path("src/\x00evil\nname.py") == "src/evilname.py"


def test_long_paths_are_capped() -> None:
    result = sanitize_file_path("a/" * 300)

    assert len(result) == MAX_FILE_PATH_CHARS


@given(raw=_PATHISH)
@settings(max_examples=200, deadline=None)
def test_property_sanitized_paths_are_relative_and_traversal_free(raw: str) -> None:
    result = sanitize_file_path(raw)

    assert result
    assert len(result) <= MAX_FILE_PATH_CHARS
    assert not result.startswith("/")
    assert ".." not in result
    assert "\\" not in result
    assert _DRIVE.match(result) is None


@given(raw=st.text(max_size=120))
@settings(max_examples=100, deadline=None)
def test_property_sanitize_file_path_is_idempotent(raw: str) -> None:
    once = sanitize_file_path(raw)

    assert sanitize_file_path(once) == once
