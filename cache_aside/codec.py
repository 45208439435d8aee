"""
Key and value codec.

Keys follow the "<table>:<id>" template (optionally "<namespace>:<table>:<id>").
The template is part of the storage contract: changing it orphans every entry
already in the cache, which then simply expires.

Values are stored as JSON, the same representation the HTTP layer returns.
"""

import json
from typing import Any, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from .errors import CacheDecodeError

KEY_SEPARATOR = ":"


class KeyCodec:
    """Maps query identities to cache keys and values to cache payloads."""

    def __init__(self, namespace: Optional[str] = None, model: Optional[Type[BaseModel]] = None):
        if namespace is not None and not namespace:
            raise ValueError("namespace must be a non-empty string or None")
        self.namespace = namespace
        self.model = model

    def make_key(self, table: str, *parts: Any) -> str:
        if not table:
            raise ValueError("table is required to build a cache key")
        if not parts:
            raise ValueError(f"at least one identity part is required for {table!r}")

        segments = [table, *(str(part) for part in parts)]
        if self.namespace:
            segments.insert(0, self.namespace)
        return KEY_SEPARATOR.join(segments)

    def encode(self, value: Any) -> bytes:
        if isinstance(value, BaseModel):
            return value.model_dump_json().encode("utf-8")
        return json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            allow_nan=False,
        ).encode("utf-8")

    def decode(self, payload: Union[bytes, str]) -> Any:
        try:
            if self.model is not None:
                return self.model.model_validate_json(payload)
            return json.loads(payload)
        except (ValidationError, ValueError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors
            raise CacheDecodeError(f"undecodable cache payload: {e}") from e
