"""Search surface over the store: full-text and embedding similarity.

Full-text queries go straight to the FTS5 index.  Similarity search loads
the vectors of one model version and ranks them by cosine similarity with
numpy; there is no approximate index, which is fine at personal-inbox
scale.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Sequence, Tuple

import numpy as np

from commdash.models import ItemRecord
from commdash.storage.engine import StorageEngine

logger = logging.getLogger(__name__)

Embedder = Callable[[str], Sequence[float]]


def cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of every row of *matrix* with *query*.

    Rows (or a query) with zero norm score 0.
    """
    denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    return np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)


class SearchService:
    """Query helper bound to one :class:`StorageEngine`."""

    def __init__(self, engine: StorageEngine) -> None:
        self.engine = engine

    def text(self, term: str, limit: int = 20) -> List[ItemRecord]:
        return self.engine.search(term, limit=limit)

    def similar(
        self,
        vector: Any,
        model_version: str,
        top_k: int = 10,
    ) -> List[Tuple[ItemRecord, float]]:
        """Return up to *top_k* ``(item, score)`` pairs, best first.

        Stored vectors whose dimension differs from *vector* are skipped.
        """
        query = np.asarray(vector, dtype=np.float32)
        if query.ndim != 1:
            raise ValueError(f"Query vector must be 1-D, got shape {query.shape}")
        if top_k <= 0:
            return []

        ids: List[int] = []
        rows: List[np.ndarray] = []
        for emb in self.engine.iter_embeddings(model_version):
            try:
                arr = emb.as_array()
            except ValueError:
                logger.debug("Embedding %d is not float32 data, skipped", emb.id)
                continue
            if arr.shape != query.shape:
                continue
            ids.append(emb.item_id)
            rows.append(arr)

        if not rows:
            return []

        scores = cosine_scores(np.vstack(rows), query)
        order = np.argsort(-scores, kind="stable")[:top_k]

        results: List[Tuple[ItemRecord, float]] = []
        for idx in order:
            item = self.engine.get_item(ids[idx])
            if item is not None:
                results.append((item, float(scores[idx])))
        return results

    def embed_missing(
        self,
        embedder: Embedder,
        model_version: str,
        *,
        batch_size: int = 100,
    ) -> int:
        """Attach a *model_version* vector to every item that lacks one.

        *embedder* receives the item's title and content joined by a
        newline.  Returns the number of vectors attached.
        """
        attached = 0
        while True:
            batch = self.engine.items_without_embedding(model_version, limit=batch_size)
            if not batch:
                break
            for item in batch:
                vector = embedder(f"{item.title}\n{item.content}")
                self.engine.attach_embedding(item.id, vector, model_version)
                attached += 1
        if attached:
            logger.info("Embedded %d items with %s", attached, model_version)
        return attached
