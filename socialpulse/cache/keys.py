"""
Cache Key Builder

Deterministic key derivation. Parameter names are sorted before
concatenation, so call-site ordering never changes the key, and absent
parameters are left out entirely rather than encoded as empty values.

Key layout:
    {prefix}[:{scope}]:{name}={value}:{name}={value}...

The scope (normally the client id) sits directly after the prefix so
that "daily_agg:1:*" matches exactly one client's entries.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _encode_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(sorted(_encode_value(v) for v in value))
    return str(value)


def build_key(prefix: str, params: Dict[str, Any], scope: Optional[Any] = None) -> str:
    """Build a cache key from a prefix and a mapping of named parameters."""
    parts = [prefix]
    if not _is_absent(scope):
        parts.append(_encode_value(scope))
    for name in sorted(params):
        value = params[name]
        if _is_absent(value):
            continue
        parts.append(f"{name}={_encode_value(value)}")
    return ":".join(parts)


def with_namespace(namespace: str, key: str) -> str:
    """Prefix a key (or pattern) with the configured namespace, if any."""
    if not namespace:
        return key
    return f"{namespace}:{key}"


def client_pattern(prefix: str, client_id: Any) -> str:
    """Glob pattern matching every entry of one client under a prefix."""
    return f"{prefix}:{_encode_value(client_id)}:*"


def prefix_pattern(prefix: str) -> str:
    return f"{prefix}:*"
