"""JSON serializer backed by orjson."""

from __future__ import annotations

import ipaddress
import logging
from enum import Enum, IntEnum
from typing import Any

import orjson

logger = logging.getLogger(__name__)


def json_default(obj: object) -> object:
    """Default handler for serializing ipmi-finder types to JSON.

    Handles:

    * Objects with a ``to_dict()`` method (``ScanCycle``,
      ``DiscoveredHost``, ``ServerConfig``, ``MachineStatus``, ...).
    * ``IntEnum`` members → ``int``; other ``Enum`` members → value.
    * ``ipaddress`` addresses and networks → string.
    * ``bytes`` and ``memoryview`` → hex string.

    :param obj: The object to convert.
    :returns: A JSON-serializable representation.
    :raises TypeError: If *obj* is not a recognised type.
    """
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, IntEnum):
        return int(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, ipaddress.IPv4Address | ipaddress.IPv4Network):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()
    if isinstance(obj, memoryview):
        return bytes(obj).hex()
    msg = f"Cannot serialize {type(obj).__name__}"
    logger.warning("serialize failed: %s", msg)
    raise TypeError(msg)


class JsonSerializer:
    """JSON serializer using orjson.

    :param pretty: Indent output with 2 spaces.
    :param sort_keys: Sort dict keys alphabetically.
    """

    def __init__(
        self,
        *,
        pretty: bool = False,
        sort_keys: bool = False,
    ) -> None:
        # Dataclasses are encoded through their to_dict(), never field by field
        self._options = orjson.OPT_NON_STR_KEYS | orjson.OPT_PASSTHROUGH_DATACLASS
        if pretty:
            self._options |= orjson.OPT_INDENT_2
        if sort_keys:
            self._options |= orjson.OPT_SORT_KEYS

    def encode(self, data: Any) -> bytes:
        """Encode a value to JSON bytes."""
        return orjson.dumps(data, default=json_default, option=self._options)

    def decode(self, raw: bytes) -> dict[str, Any]:
        """Decode JSON bytes to a dict.

        :raises orjson.JSONDecodeError: If *raw* is not valid JSON.
        :raises TypeError: If the document is not a JSON object.
        """
        result = orjson.loads(raw)
        if not isinstance(result, dict):
            msg = f"Expected JSON object, got {type(result).__name__}"
            logger.warning("deserialize failed: %s", msg)
            raise TypeError(msg)
        return result
