"""Tests for commdash.search — FTS wrapper and cosine similarity over stored vectors."""

from __future__ import annotations

import numpy as np
import pytest

from commdash.models import Item
from commdash.search import SearchService, cosine_scores


@pytest.fixture
def service(engine):
    engine.upsert_items([
        Item("slack:1", "deploy finished", "billing service is live"),
        Item("gmail:1", "invoice", "billing for november"),
        Item("linear:1", "flaky test", "retry the integration suite"),
    ])
    return SearchService(engine)


def _id(engine, key):
    return engine.get_item_by_key(key).id


class TestCosineScores:
    def test_basic(self):
        m = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]], dtype=np.float32)
        scores = cosine_scores(m, np.array([1.0, 0.0], dtype=np.float32))
        np.testing.assert_allclose(scores, [1.0, 0.0, 1 / np.sqrt(2)], rtol=1e-6)

    def test_zero_norm_scores_zero(self):
        m = np.array([[0.0, 0.0], [1.0, 0.0]], dtype=np.float32)
        np.testing.assert_allclose(cosine_scores(m, np.array([1.0, 0.0], dtype=np.float32)), [0.0, 1.0])
        np.testing.assert_allclose(cosine_scores(m, np.zeros(2, dtype=np.float32)), [0.0, 0.0])


class TestText:
    def test_text(self, service):
        assert {r.source_key for r in service.text("billing")} == {"slack:1", "gmail:1"}
        assert service.text("billing", limit=1)[0].source_key in {"slack:1", "gmail:1"}


class TestSimilar:
    def test_ranked_by_cosine(self, engine, service):
        engine.attach_embedding(_id(engine, "slack:1"), [1.0, 0.0, 0.0], "m1")
        engine.attach_embedding(_id(engine, "gmail:1"), [0.7, 0.7, 0.0], "m1")
        engine.attach_embedding(_id(engine, "linear:1"), [0.0, 0.0, 1.0], "m1")

        results = service.similar([1.0, 0.1, 0.0], "m1", top_k=2)
        assert [r.source_key for r, _ in results] == ["slack:1", "gmail:1"]
        assert results[0][1] > results[1][1]

    def test_only_requested_model_version(self, engine, service):
        engine.attach_embedding(_id(engine, "slack:1"), [1.0, 0.0], "m1")
        engine.attach_embedding(_id(engine, "gmail:1"), [1.0, 0.0], "m2")
        assert [r.source_key for r, _ in service.similar([1.0, 0.0], "m2")] == ["gmail:1"]

    def test_dimension_mismatch_skipped(self, engine, service):
        engine.attach_embedding(_id(engine, "slack:1"), [1.0, 0.0], "m1")
        engine.attach_embedding(_id(engine, "gmail:1"), [1.0, 0.0, 0.0], "m1")
        assert [r.source_key for r, _ in service.similar([1.0, 0.0], "m1")] == ["slack:1"]

    def test_opaque_blobs_skipped(self, engine, service):
        engine.attach_embedding(_id(engine, "slack:1"), b"\x01\x02\x03", "m1")
        assert service.similar([1.0, 0.0], "m1") == []

    def test_empty_and_invalid(self, service):
        assert service.similar([1.0], "none") == []
        assert service.similar([1.0], "none", top_k=0) == []
        with pytest.raises(ValueError):
            service.similar([[1.0]], "m1")


class TestEmbedMissing:
    def test_attaches_for_every_item_once(self, engine, service):
        seen = []

        def embedder(text):
            seen.append(text)
            return [float(len(text)), 1.0]

        assert service.embed_missing(embedder, "m1", batch_size=2) == 3
        assert len(seen) == 3
        assert "deploy finished\nbilling service is live" in seen
        assert engine.items_without_embedding("m1") == []

        assert service.embed_missing(embedder, "m1") == 0
        assert len(seen) == 3

    def test_embedder_error_propagates(self, service):
        def broken(text):
            raise RuntimeError("model offline")

        with pytest.raises(RuntimeError):
            service.embed_missing(broken, "m1")
