"""Placeholder resolution: answer value -> printable, emphasized contract text."""

import html
from datetime import date, datetime
from typing import Any, Mapping, Optional

# Printed for any absent, null or blank answer
UNSPECIFIED = "-"

DATE_FIELDS = ("moveInDate", "rentEndDate", "agreementDate")

EMPHASIS_OPEN = "<strong>"
EMPHASIS_CLOSE = "</strong>"


def format_date(value: Any) -> str:
    """Return ``dd/mm/yyyy`` for date-like input, the input unchanged otherwise."""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")

    text = str(value).strip()
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate).strftime("%d/%m/%Y")
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").strftime("%d/%m/%Y")
    except ValueError:
        return text


def stringify(value: Any) -> Optional[str]:
    """Plain text for an answer value, or None when it counts as missing."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple)):
        parts = [stringify(item) for item in value]
        joined = ", ".join(part for part in parts if part)
        return joined or None
    text = str(value).strip()
    return text or None


def escape_value(text: str) -> str:
    # Braces are neutralized so answer text can never form a template tag
    escaped = html.escape(text, quote=False)
    return escaped.replace("{", "&#123;").replace("}", "&#125;")


def emphasize(text: str, enabled: bool = True) -> str:
    if not enabled:
        return text
    return f"{EMPHASIS_OPEN}{text}{EMPHASIS_CLOSE}"


def format_value(key: str, value: Any, emphasis: bool = True) -> str:
    text = stringify(value)
    if text is None:
        return emphasize(UNSPECIFIED, emphasis)
    if key in DATE_FIELDS:
        text = format_date(text)
    return emphasize(escape_value(text), emphasis)


def resolve_placeholder(
    key: str,
    answers: Mapping[str, Any],
    entry: Optional[Mapping[str, Any]] = None,
    emphasis: bool = True,
) -> str:
    """Resolve one ``{{key}}``.

    When ``entry`` is given (a tenant entry bound by the expander) the value is
    read from it and never from the flattened answers, so a missing field on a
    second tenant prints the unspecified marker instead of the first tenant's
    value.
    """
    source = entry if entry is not None else answers
    return format_value(key, source.get(key), emphasis)
