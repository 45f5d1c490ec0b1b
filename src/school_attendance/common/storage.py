from __future__ import annotations

import copy
from typing import Any, Optional, Protocol, Sequence


class KeyValueStore(Protocol):
    """Device-local cache. Values are JSON-shaped (dicts, lists, scalars)."""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def keys(self) -> Sequence[str]:
        raise NotImplementedError


class InMemoryStore(KeyValueStore):
    """Process-local store. Copies on read and write so callers never share state."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> Sequence[str]:
        return list(self._data.keys())


def student_key(prefix: str, student_id: str) -> str:
    return f"{prefix}_{student_id}"


async def delete_prefixed(store: KeyValueStore, prefix: str) -> int:
    removed = 0
    for key in await store.keys():
        if key.startswith(prefix):
            await store.delete(key)
            removed += 1
    return removed
