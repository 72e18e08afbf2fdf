"""
Bounded search for generated recharge artifacts inside arbitrary server payloads.

The purchase/recharge responses have moved the generated cards around between
server releases, so the walk first tries the paths we have seen and then falls
back to a depth-limited tree walk. A node matches when it is either:

  * a non-empty list whose items are all dicts carrying a "pin" or "serial" key, or
  * a non-empty list stored under a key whose name contains "pin"
    (plain strings are wrapped as {"pin": value}).

Any new response shape means updating KNOWN_PATHS / _is_artifact_list and
adding a fixture for it.
"""
from typing import Any, Dict, List, Optional

from walletflow.settings import settings

KNOWN_PATHS = (
    ("pins",),
    ("data", "pins"),
    ("transaction", "pins"),
    ("result", "pins"),
    ("recharge", "pins"),
)


def _is_artifact_list(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    return all(isinstance(item, dict) and ("pin" in item or "serial" in item) for item in value)


def _normalize(items: List[Any]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for item in items:
        if isinstance(item, dict):
            out.append(dict(item))
        elif isinstance(item, (str, int)) and not isinstance(item, bool):
            out.append({"pin": str(item)})
    return out


def _at_path(payload: Any, path) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _walk(node: Any, depth: int, max_depth: int) -> Optional[List[Dict[str, Any]]]:
    if depth > max_depth:
        return None
    if _is_artifact_list(node):
        return _normalize(node)
    if isinstance(node, dict):
        for key, value in node.items():
            if isinstance(key, str) and "pin" in key.lower() and isinstance(value, list) and value:
                found = _normalize(value)
                if found:
                    return found
        for value in node.values():
            found = _walk(value, depth + 1, max_depth)
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _walk(value, depth + 1, max_depth)
            if found:
                return found
    return None


def find_artifacts(payload: Any, max_depth: Optional[int] = None) -> List[Dict[str, Any]]:
    """Return the generated artifacts found in payload, or [] when there are none."""
    if not isinstance(payload, (dict, list)):
        return []
    for path in KNOWN_PATHS:
        node = _at_path(payload, path)
        if _is_artifact_list(node):
            return _normalize(node)
    limit = int(max_depth if max_depth is not None else settings.ARTIFACT_SEARCH_MAX_DEPTH)
    return _walk(payload, 0, limit) or []
