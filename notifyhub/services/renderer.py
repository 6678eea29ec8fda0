"""
Placeholder substitution for email templates.

Only literal ``{{key}}`` tokens are replaced, in a single pass over the
template text: substituted values are never scanned again, so the result
does not depend on the order of the variables. No escaping, no control
flow; placeholders for keys that are not provided stay in the output.
"""
import re
from typing import Any, Mapping

PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


def build_variables(user_name: str | None, user_email: str | None, data: Mapping[str, Any] | None) -> dict:
    """Merge recipient fields with the request data; data wins on conflicts."""
    variables = {"user_name": user_name, "user_email": user_email}
    variables.update(data or {})
    return variables


def render(text: str | None, variables: Mapping[str, Any]) -> str:
    """Replace every ``{{key}}`` whose key is in ``variables``."""
    values = {str(k): v for k, v in variables.items()}

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        value = values[key]
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(substitute, text or "")


def render_template(template, variables: Mapping[str, Any]) -> tuple[str, str]:
    """Return (subject, html) for a Template row."""
    return render(template.subject, variables), render(template.html_content, variables)
