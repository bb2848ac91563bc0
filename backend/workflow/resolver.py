"""Variable resolution for workflow templates.

Steps reference earlier results with dot paths (``trigger.body.user.id``,
``step-3.rows.0.email``) and embed them in strings as ``{{ path }}``.
A path that does not resolve is reported as ``UNDEFINED``, which is
distinct from a resolved ``None``: templates keep unresolved placeholders
verbatim but render ``None`` as ``null``.
"""

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

_TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


class _Undefined:
    """Marker for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


def _step_into(current: Any, part: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(part, UNDEFINED)
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if part.isdigit() and int(part) < len(current):
            return current[int(part)]
    return UNDEFINED


def resolve_path(root: Any, path: str) -> Any:
    """Resolve a dot-notation path against a nested mapping.

    Mappings are walked key by key; list segments may be addressed by
    integer index. Returns ``UNDEFINED`` as soon as a segment is missing
    or an intermediate value is not traversable. Never raises.
    """
    if not isinstance(path, str) or not path:
        return UNDEFINED

    current = root
    for part in path.split("."):
        if current is UNDEFINED or current is None:
            return UNDEFINED
        current = _step_into(current, part)
    return current


def stringify(value: Any) -> str:
    """Render a resolved value the way templates and conditions see it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def substitute(template: Any, context: Mapping[str, Any]) -> Any:
    """Replace every ``{{ path }}`` placeholder in ``template``.

    Unresolved placeholders are left untouched so a template that
    references missing data stays visibly unresolved. Non-string
    templates are returned unchanged.
    """
    if not isinstance(template, str):
        return template

    def _replace(match: re.Match) -> str:
        value = resolve_path(context, match.group(1).strip())
        if value is UNDEFINED:
            return match.group(0)
        return stringify(value)

    return _TEMPLATE_PATTERN.sub(_replace, template)


def find_placeholders(template: Any) -> list[str]:
    """List the paths referenced by a template, in order of appearance."""
    if not isinstance(template, str):
        return []
    return [m.group(1).strip() for m in _TEMPLATE_PATTERN.finditer(template)]
