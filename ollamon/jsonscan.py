"""Narrow field scanner for the Ollama API responses.

This is not a JSON parser. Each helper looks for the first occurrence of a
quoted key in the raw response text and pulls out one value. The response
shapes of /api/tags and /api/ps are fixed and shallow, so that is enough, and
garbage or truncated input simply yields empty/zero values.

Known limitations, kept as-is:
  * escaped quotes inside string values end the value early;
  * extract_array_of_strings stops at the first ``]``, so nested arrays in the
    target array are split wrongly. Only extract_object_list tracks nesting.
"""

from __future__ import annotations

_WHITESPACE = " \t\n\r"
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def extract_string(buf: str, key: str) -> str:
    """Return the string value of ``key``, or "" if absent/unterminated."""
    search = f'"{key}":"'
    pos = buf.find(search)
    if pos < 0:
        search = f'"{key}": "'
        pos = buf.find(search)
    if pos < 0:
        return ""
    pos += len(search)
    end = buf.find('"', pos)
    if end < 0:
        return ""
    return buf[pos:end]


def extract_int(buf: str, key: str) -> int:
    """Return the int64 value of ``key``; 0 when absent, unparseable or out of range."""
    search = f'"{key}":'
    pos = buf.find(search)
    if pos < 0:
        return 0
    pos += len(search)
    while pos < len(buf) and buf[pos] in _WHITESPACE:
        pos += 1
    end = _find_first_of(buf, ",}", pos)
    if end < 0:
        return 0
    raw = buf[pos:end].strip(_WHITESPACE)
    if "_" in raw:
        return 0
    try:
        value = int(raw, 10)
    except ValueError:
        return 0
    if not _INT64_MIN <= value <= _INT64_MAX:
        return 0
    return value


def extract_array_of_strings(buf: str, key: str) -> list[str]:
    """Return the quoted items of ``"key":[...]`` up to the first ``]``."""
    search = f'"{key}":['
    pos = buf.find(search)
    if pos < 0:
        return []
    pos += len(search)
    end = buf.find("]", pos)
    if end < 0:
        return []
    values = []
    for item in buf[pos:end].split(","):
        item = item.strip(_WHITESPACE)
        if len(item) >= 2 and item[0] == '"' and item[-1] == '"':
            values.append(item[1:-1])
    return values


def extract_object_list(buf: str, key: str) -> list[str]:
    """Split ``"key":[{...},{...}]`` into raw top-level object substrings.

    The closing bracket of the array is found by depth counting, so arrays
    nested inside the objects (e.g. ``families``) do not cut the list short.
    An unterminated array yields nothing.
    """
    search = f'"{key}":['
    pos = buf.find(search)
    if pos < 0:
        return []
    pos += len(search)

    depth = 1
    end = pos
    while end < len(buf) and depth > 0:
        ch = buf[end]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        end += 1
    if depth != 0:
        return []
    body = buf[pos:end - 1]

    objects = []
    braces = 0
    start = 0
    for i, ch in enumerate(body):
        if ch == "{":
            if braces == 0:
                start = i
            braces += 1
        elif ch == "}":
            braces -= 1
            if braces == 0:
                objects.append(body[start:i + 1])
    return objects


def _find_first_of(buf: str, chars: str, pos: int) -> int:
    for i in range(pos, len(buf)):
        if buf[i] in chars:
            return i
    return -1
