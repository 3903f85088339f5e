"""Markup neutralisation for text shown on the public signing page."""

from markupsafe import escape


def sanitize_text(value: str | None) -> str:
    """Escape HTML so operator-supplied text cannot inject markup."""
    if not value:
        return ""
    return str(escape(value))
