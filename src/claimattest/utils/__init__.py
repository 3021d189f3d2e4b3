from .timestamps import (
    now_ms,
    monotonic_s,
)

from .canonical import (
    canonicalize,
    canonicalize_str,
    json_dumps,
    json_loads,
)

__all__ = [
    "now_ms",
    "monotonic_s",
    "canonicalize",
    "canonicalize_str",
    "json_dumps",
    "json_loads",
]
