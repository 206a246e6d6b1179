"""System clipboard collaborator for exporting the transcript."""

from __future__ import annotations

from errors import ClipboardError

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore


class PyperclipClipboard:
    def write(self, text: str) -> None:
        if pyperclip is None:
            raise ClipboardError("pyperclip is not installed")
        try:
            pyperclip.copy(text)
        except Exception as exc:
            raise ClipboardError(f"Clipboard unavailable: {exc}") from exc
