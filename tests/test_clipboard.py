from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

import clipboard
from clipboard import PyperclipClipboard
from errors import CLIPBOARD_ERROR, ClipboardError


def test_write_fails_when_dependency_missing(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(clipboard, "pyperclip", None)

    with pytest.raises(ClipboardError, match="not installed"):
        PyperclipClipboard().write("hello")


@patch("clipboard.pyperclip")
def test_write_copies_text_verbatim(mock_clip: MagicMock) -> None:
    PyperclipClipboard().write("hello world")

    mock_clip.copy.assert_called_once_with("hello world")


@patch("clipboard.pyperclip")
def test_write_maps_backend_failure(mock_clip: MagicMock) -> None:
    mock_clip.copy.side_effect = RuntimeError("no xclip")

    with pytest.raises(ClipboardError) as info:
        PyperclipClipboard().write("hello")

    assert info.value.code == CLIPBOARD_ERROR
    assert "no xclip" in info.value.message
