"""
Unit tests for the collaborative filtering model
"""

import numpy as np
import pytest

from rtrec.models.collaborative import CollaborativeFiltering, EmbeddingTable
from rtrec.models.entities import TrainingExample
from rtrec.utils.validation import DimensionMismatchError

TEST_DIM = 8


class TestEmbeddingTable:
    """Test the row arena backing user and item embeddings"""

    def test_ensure_initializes_once(self):
        calls = []

        def initializer(identifier):
            calls.append(identifier)
            return np.full(3, 0.5, dtype=np.float32)

        table = EmbeddingTable(3, initializer, initial_capacity=2)
        table.ensure("a")
        table.ensure("a")

        assert calls == ["a"]
        assert len(table) == 1

    def test_grows_past_initial_capacity(self):
        table = EmbeddingTable(2, lambda identifier: np.zeros(2, dtype=np.float32), initial_capacity=1)
        for i in range(5):
            table.set(i, [float(i), float(i)])

        assert len(table) == 5
        np.testing.assert_array_equal(table.get(3), [3.0, 3.0])

        identifiers, weights = table.export()
        assert identifiers == [0, 1, 2, 3, 4]
        assert weights.shape == (5, 2)

    def test_set_rejects_wrong_dimension(self):
        table = EmbeddingTable(2, lambda identifier: np.zeros(2, dtype=np.float32))
        with pytest.raises(DimensionMismatchError):
            table.set("x", [1.0, 2.0, 3.0])


class TestCollaborativeFiltering:
    """Test model training and scoring"""

    def test_predict_is_dot_product(self, model):
        assert model.predict([1.0, 0.0], [0.0, 1.0]) == 0.0
        assert model.predict([1.0, 1.0], [1.0, 1.0]) == 2.0
        assert model.predict([1.0, 2.0, 3.0], [4.0, 5.0, 6.0]) == pytest.approx(32.0)

    def test_predict_rejects_mismatched_vectors(self, model):
        with pytest.raises(DimensionMismatchError):
            model.predict([1.0, 2.0], [1.0, 2.0, 3.0])

    def test_sgd_update_matches_closed_form(self, model, make_example):
        example = make_example(user_id="u1", item_id="i1", label=1.0)
        user_before = model.initialize_user_embedding("u1").copy()
        item_before = model.initialize_item_embedding("i1").copy()

        model.sgd_update(example)

        error = 1.0 - float(np.dot(user_before, item_before))
        expected_user = user_before + model.learning_rate * (error * item_before - model.regularization * user_before)
        expected_item = item_before + model.learning_rate * (error * user_before - model.regularization * item_before)

        np.testing.assert_allclose(model.user_embeddings.get("u1"), expected_user, rtol=1e-5, atol=1e-6)
        np.testing.assert_allclose(model.item_embeddings.get("i1"), expected_item, rtol=1e-5, atol=1e-6)

    def test_sgd_is_deterministic_across_models(self, make_example):
        examples = [make_example(user_id=f"u{i % 3}", item_id=f"i{i % 4}", label=float(i % 2)) for i in range(12)]

        first = CollaborativeFiltering(TEST_DIM, learning_rate=0.05)
        second = CollaborativeFiltering(TEST_DIM, learning_rate=0.05)
        for example in examples:
            first.sgd_update(example)
            second.sgd_update(example)

        for user_id in ("u0", "u1", "u2"):
            np.testing.assert_array_equal(first.user_embeddings.get(user_id), second.user_embeddings.get(user_id))

    def test_compute_loss_skips_unknown_endpoints(self, model, make_example):
        known = make_example(user_id="u1", item_id="i1", label=1.0)
        model.sgd_update(known)
        unknown = make_example(user_id="u1", item_id="never-seen", label=0.0)

        loss = model.compute_loss([known, unknown])

        prediction = float(np.dot(model.user_embeddings.get("u1"), model.item_embeddings.get("i1")))
        assert loss == pytest.approx((1.0 - prediction) ** 2, rel=1e-5)
        assert "never-seen" not in model.item_embeddings

    def test_compute_loss_empty_is_zero(self, model):
        assert model.compute_loss([]) == 0.0

    @pytest.mark.asyncio
    async def test_train_reduces_loss(self, model, make_example):
        examples = [make_example(user_id="u1", item_id="i1", label=1.0)]
        model.initialize_user_embedding("u1")
        model.initialize_item_embedding("i1")
        before = model.compute_loss(examples)

        for _ in range(50):
            await model.train(examples)

        assert await model.evaluate_loss(examples) < before

    @pytest.mark.asyncio
    async def test_train_skips_malformed_examples(self, model, make_example):
        bad = TrainingExample(
            user_id=["unhashable"],
            item_id="i1",
            label=1.0,
            user_features=np.zeros(TEST_DIM),
            item_features=np.zeros(TEST_DIM),
        )
        good = make_example(user_id="u2", item_id="i2")

        await model.train([bad, good])

        counts = await model.embedding_counts()
        assert counts == {"user_embeddings_count": 1, "item_embeddings_count": 1}

    @pytest.mark.asyncio
    async def test_get_embedding_for_unknown_id_does_not_store(self, model):
        first = await model.get_user_embedding("ghost")
        second = await model.get_user_embedding("ghost")

        np.testing.assert_array_equal(first, second)
        assert "ghost" not in model.user_embeddings

    @pytest.mark.asyncio
    async def test_get_embedding_returns_copy(self, model):
        model.initialize_item_embedding("i1")
        embedding = await model.get_item_embedding("i1")
        embedding[:] = 99.0

        assert not np.any(model.item_embeddings.get("i1") == 99.0)

    @pytest.mark.asyncio
    async def test_snapshot_round_trip(self, model, make_example):
        await model.train([make_example(user_id="u1", item_id="i1"), make_example(user_id="u2", item_id="i1")])
        parameters = await model.snapshot_parameters()

        assert parameters.version.startswith("v")
        assert parameters.user_ids == ["u1", "u2"]
        assert parameters.user_embedding_weights.shape == (2, TEST_DIM)

        restored = CollaborativeFiltering(TEST_DIM)
        await restored.update_parameters(parameters)

        for user_id in ("u1", "u2"):
            np.testing.assert_array_equal(
                await restored.get_user_embedding(user_id), await model.get_user_embedding(user_id)
            )

    @pytest.mark.asyncio
    async def test_update_parameters_rejects_wrong_dimension(self, model, make_example):
        other = CollaborativeFiltering(TEST_DIM * 2)
        await other.train([make_example(user_id="u1", item_id="i1", dim=TEST_DIM * 2)])
        parameters = await other.snapshot_parameters()

        with pytest.raises(DimensionMismatchError):
            await model.update_parameters(parameters)
