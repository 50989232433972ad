"""Unit tests for embedding parsing, cosine similarity and top-k ranking."""

from __future__ import annotations

import pytest

from src.services.similarity import cosine_similarity, parse_embedding, rank_top_k


class TestParseEmbedding:
    def test_json_text(self) -> None:
        assert parse_embedding("[0.5, 1, -2]") == [0.5, 1.0, -2.0]

    def test_list_passthrough(self) -> None:
        assert parse_embedding([1, 2]) == [1.0, 2.0]

    @pytest.mark.parametrize("raw", [None, "", "not json", '{"a": 1}', '["x", "y"]', "3"])
    def test_malformed_yields_empty(self, raw: object) -> None:
        assert parse_embedding(raw) == []


class TestCosineSimilarity:
    def test_identical_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_length_mismatch_is_zero(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0

    def test_zero_magnitude_is_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    @pytest.mark.parametrize("pair", [([], [1.0]), (None, [1.0]), ([1.0], None)])
    def test_missing_is_zero(self, pair: tuple) -> None:
        assert cosine_similarity(*pair) == 0.0

    def test_result_is_within_bounds(self) -> None:
        score = cosine_similarity([0.1, 0.2, 0.3], [0.1, 0.2, 0.3000001])
        assert -1.0 <= score <= 1.0


class TestRankTopK:
    def test_orders_by_score_descending(self) -> None:
        ranked = rank_top_k(["a", "bbb", "cc"], len)
        assert [item for item, _ in ranked] == ["bbb", "cc", "a"]

    def test_truncates_to_k(self) -> None:
        ranked = rank_top_k(range(10), float, k=3)
        assert [item for item, _ in ranked] == [9, 8, 7]

    def test_ties_keep_input_order(self) -> None:
        ranked = rank_top_k(["x", "y", "z"], lambda _: 0.5, k=2)
        assert [item for item, _ in ranked] == ["x", "y"]

    def test_k_larger_than_input_does_not_pad(self) -> None:
        assert len(rank_top_k([1, 2], float, k=8)) == 2
