"""
Payload codecs.

The store keeps payloads as text; a codec turns caller objects into that
text and back.
"""

import json
from typing import Any, Protocol


class PayloadCodec(Protocol):
    """Protocol for payload serialization."""

    def encode(self, payload: Any) -> str:
        ...

    def decode(self, data: str) -> Any:
        ...


class JsonCodec:
    """JSON payload codec (the default)."""

    def encode(self, payload: Any) -> str:
        return json.dumps(payload)

    def decode(self, data: str) -> Any:
        return json.loads(data)
