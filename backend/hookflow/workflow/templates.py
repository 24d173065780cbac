# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Template Resolution

Substitutes references to earlier node outputs into a node's configuration.

Two reference forms are supported:

    {{@<nodeId>:<label>.<field.path>}}   qualified, looked up by node id
    {{<label-or-type>.<field.path>}}     unqualified, looked up by label,
                                         falling back to the node type tag

Unresolvable references are left in place. Substitution is a single pass.
"""

import json
import re
from typing import Any, Dict, Mapping, Optional

from .models import NodeOutput

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def sanitize_node_id(node_id: str) -> str:
    """Replace every non-alphanumeric character with an underscore"""
    return re.sub(r"[^a-zA-Z0-9]", "_", node_id)


def stringify(value: Any) -> str:
    """Render a value for inclusion in a string template"""
    if value is None:
        return ""
    if isinstance(value, (dict, list, tuple, bool)):
        return json.dumps(value, default=str)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _walk(data: Any, field_path: str) -> Any:
    """Follow a dot-separated path; returns _MISSING on any dead end"""
    current = data
    for field in field_path.split("."):
        if isinstance(current, dict):
            if field not in current:
                return _MISSING
            current = current[field]
        elif isinstance(current, (list, tuple)) and field.isdigit() and int(field) < len(current):
            current = current[int(field)]
        else:
            return _MISSING
    return current


def _render(output: NodeOutput, field_path: Optional[str]) -> str:
    if output.data is None:
        return ""
    if not field_path:
        return stringify(output.data)
    value = _walk(output.data, field_path)
    if value is _MISSING:
        return ""
    return stringify(value)


def _find_by_label(name: str, outputs: Mapping[str, NodeOutput]) -> Optional[NodeOutput]:
    wanted = name.strip().lower()
    for output in outputs.values():
        if output.label.lower() == wanted:
            return output
    for output in outputs.values():
        if output.node_type.lower() == wanted:
            return output
    return None


def _resolve_qualified(reference: str, outputs: Mapping[str, NodeOutput]) -> Optional[str]:
    # reference is "<nodeId>:<label>[.<field.path>]" without the leading "@"
    node_id, colon, rest = reference.partition(":")
    if not colon or not node_id or not rest:
        return None
    output = outputs.get(sanitize_node_id(node_id))
    if output is None:
        return None
    _, dot, field_path = rest.partition(".")
    return _render(output, field_path if dot else None)


def _resolve_unqualified(reference: str, outputs: Mapping[str, NodeOutput]) -> Optional[str]:
    name, dot, field_path = reference.partition(".")
    output = _find_by_label(name, outputs)
    if output is None:
        return None
    return _render(output, field_path.strip() if dot else None)


def resolve_string(value: str, outputs: Mapping[str, NodeOutput]) -> str:
    """Resolve every reference inside a single string in one pass"""

    def replace(match: re.Match) -> str:
        reference = match.group(1)
        if reference.startswith("@"):
            resolved = _resolve_qualified(reference[1:], outputs)
        else:
            resolved = _resolve_unqualified(reference, outputs)
        return match.group(0) if resolved is None else resolved

    return TEMPLATE_PATTERN.sub(replace, value)


def resolve(config: Mapping[str, Any], outputs: Mapping[str, NodeOutput]) -> Dict[str, Any]:
    """
    Resolve template references in every string value of ``config``.

    Args:
        config: Node configuration (not modified)
        outputs: Sanitized node id -> output of an earlier node

    Returns:
        New configuration dict with references substituted
    """
    resolved = {}
    for key, value in config.items():
        if isinstance(value, str):
            resolved[key] = resolve_string(value, outputs)
        else:
            resolved[key] = value
    return resolved
