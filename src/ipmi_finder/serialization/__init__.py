"""JSON encoding of scan results, machine listings and configuration files.

Anything with a ``to_dict()`` method (``ScanCycle``, ``DiscoveredHost``,
``ServerConfig``, ``MachineStatus``, ...) is encoded through it, so
machine credentials never reach the output.
"""

from __future__ import annotations

from typing import Any

from ipmi_finder.serialization.json import JsonSerializer, json_default

__all__ = ["JsonSerializer", "deserialize", "json_default", "serialize"]

_COMPACT = JsonSerializer()
_PRETTY = JsonSerializer(pretty=True)


def serialize(obj: Any, *, pretty: bool = False) -> bytes:
    """Encode a scan result, listing or plain value as JSON bytes."""
    return (_PRETTY if pretty else _COMPACT).encode(obj)


def deserialize(raw: bytes) -> dict[str, Any]:
    """Decode a JSON document that must be an object.

    :raises orjson.JSONDecodeError: If *raw* is not valid JSON.
    :raises TypeError: If the document is not a JSON object.
    """
    return _COMPACT.decode(raw)
