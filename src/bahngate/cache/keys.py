"""Cache key schema for the gateway.

Key formats:
- {prefix}:{logical_name}:{params_hash}   computed from a parameter set
- {prefix}:{key_prefix}:{logical_name}    when no parameters are given

Where:
- prefix: "bahngate" (namespace shared with other tenants of the Redis)
- params_hash: 8-character base-36 digest of the canonical parameter JSON

The digest is two 32-bit accumulators run over the UTF-16 code units of the
canonical text: djb2 (seed 5381, h = h*33 + c) and FNV-1a (seed 2166136261,
h = (h ^ c) * 16777619), each wrapped to 32 bits per step. The result is
|djb2| XOR |fnv| of their signed interpretations, written in base 36 and
left-padded to 8 characters. It is fast but not collision resistant.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping
from typing import Any

import orjson

HASH_FUNCTION_ID = "custom-djb2-fnv1a"

_MASK32 = 0xFFFFFFFF
_DJB2_SEED = 5381
_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_int32(value: int) -> int:
    value &= _MASK32
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_code_units(text: str) -> tuple[int, ...]:
    data = text.encode("utf-16-le", "surrogatepass")
    return struct.unpack(f"<{len(data) // 2}H", data)


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def combined_hash(text: str) -> str:
    """Hash ``text`` to an 8-character base-36 string (djb2 combined with FNV-1a)."""
    djb2 = _DJB2_SEED
    fnv = _FNV_OFFSET
    for unit in _utf16_code_units(text):
        djb2 = (djb2 * 33 + unit) & _MASK32
        fnv = ((fnv ^ unit) * _FNV_PRIME) & _MASK32

    combined = abs(_to_int32(djb2)) ^ abs(_to_int32(fnv))
    return _base36(combined).rjust(8, "0")


def _is_serializable(value: Any) -> bool:
    if callable(value):
        return False
    try:
        orjson.dumps(value)
    except TypeError:  # orjson.JSONEncodeError subclasses TypeError
        return False
    return True


def canonical_params(params: Mapping[str, Any]) -> str:
    """Render ``params`` as compact JSON with sorted names.

    Entries whose value cannot be represented in JSON (functions, arbitrary
    objects, sets) are dropped, so two parameter sets that differ only in
    ordering or in such entries produce the same text. Nested objects are
    sorted as well.
    """
    clean = {name: params[name] for name in sorted(params) if _is_serializable(params[name])}
    return orjson.dumps(clean, option=orjson.OPT_SORT_KEYS).decode()


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    PREFIX = "bahngate"
    DEFAULT_KEY_PREFIX = "default"

    @classmethod
    def for_params(cls, logical_name: str, params: Mapping[str, Any]) -> str:
        """Key for a computation identified by its parameter set."""
        return f"{cls.PREFIX}:{logical_name}:{combined_hash(canonical_params(params))}"

    @classmethod
    def for_name(cls, logical_name: str, key_prefix: str | None = None) -> str:
        """Key for a computation identified by name alone."""
        return f"{cls.PREFIX}:{key_prefix or cls.DEFAULT_KEY_PREFIX}:{logical_name}"

    @classmethod
    def derive(
        cls,
        logical_name: str,
        params: Mapping[str, Any] | None = None,
        key_prefix: str | None = None,
    ) -> str:
        """Pick the parameter-hash form when any parameters were given."""
        if params:
            return cls.for_params(logical_name, params)
        return cls.for_name(logical_name, key_prefix)

    @classmethod
    def namespace_pattern(cls) -> str:
        """SCAN pattern matching every cache entry."""
        return f"{cls.PREFIX}:*"

    @classmethod
    def in_namespace(cls, pattern: str) -> bool:
        return pattern.startswith(f"{cls.PREFIX}:")
