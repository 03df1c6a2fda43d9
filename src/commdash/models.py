"""Data models shared by adapters, the orchestrator and the storage engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np


def provider_of(source_key: str) -> str:
    """Return the provider prefix of ``"provider:externalId"``."""
    provider, sep, _ = source_key.partition(":")
    return provider if sep else ""


def make_source_key(provider: str, external_id: Any) -> str:
    return f"{provider}:{external_id}"


@dataclass(frozen=True)
class Item:
    """A normalized record produced by a source adapter, ready to upsert."""

    source_key: str
    title: str
    content: str = ""

    @property
    def provider(self) -> str:
        return provider_of(self.source_key)


@dataclass(frozen=True)
class ItemRecord:
    """A stored item row."""

    id: int
    source_key: str
    title: str
    content: str
    created_at: float
    updated_at: float

    @property
    def provider(self) -> str:
        return provider_of(self.source_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_key": self.source_key,
            "provider": self.provider,
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Embedding:
    """A vector attached to an item by a given embedding model."""

    id: int
    item_id: int
    vector: bytes
    model_version: str
    created_at: float

    def as_array(self, dtype: Any = np.float32) -> np.ndarray:
        """Decode the blob as a 1-D array (float32 unless told otherwise)."""
        return np.frombuffer(self.vector, dtype=dtype)


@dataclass(frozen=True)
class ConfigEntry:
    id: int
    key: str
    value: str
    updated_at: float


@dataclass
class UpsertSummary:
    """What one ``upsert_items`` transaction did."""

    inserted: int = 0
    updated: int = 0
    ids: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.updated
