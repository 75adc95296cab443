"""Compose TUI for dusk chat.

Requires the ``chat`` extra::

    pip install 'duskline[chat]'
"""

from __future__ import annotations


def require_textual() -> None:
    """Raise a clear error if textual is not installed."""
    try:
        import textual  # noqa: F401
    except ImportError as exc:
        raise SystemExit(
            "The 'textual' package is required for dusk chat.\n" "Install it with: pip install 'duskline[chat]'"
        ) from exc
