from __future__ import annotations

import re
from typing import Any, Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{([^{}]+)\}\}")


def render(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{{key}}`` placeholders with ``variables``.

    Keys match case-insensitively. A known key whose value is ``None`` renders
    as an empty string; placeholders for unknown keys are left as they are.
    """

    if not template:
        return template or ""

    lookup: dict[str, Any] = {}
    for key, value in variables.items():
        lookup.setdefault(str(key).lower(), value)

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1).lower()
        if key not in lookup:
            return match.group(0)
        value = lookup[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_substitute, template)
