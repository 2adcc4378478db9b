"""
Tests for embedding set decoding.

Run with: pytest tests/test_embedding_set.py -v
"""

import json
import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.embedding_set import (
    MultipleEmbeddings,
    SingleEmbedding,
    decode_embedding_set,
    embeddings_of,
    encode_embedding_set,
    make_embedding_set,
)
from core.exceptions import InvalidEmbeddingError


class TestDecodeEmbeddingSet:
    """Tests for the storage boundary decoder."""

    def test_flat_list_is_single(self):
        es = decode_embedding_set("[0.1, 0.2, 0.3]")
        assert isinstance(es, SingleEmbedding)
        assert es.vector == (0.1, 0.2, 0.3)
        assert len(es) == 1

    def test_list_of_lists_is_multiple(self):
        es = decode_embedding_set("[[0.1, 0.2], [0.3, 0.4]]")
        assert isinstance(es, MultipleEmbeddings)
        assert len(es) == 2
        np.testing.assert_allclose(es.embeddings[1], [0.3, 0.4])

    def test_parsed_value_accepted(self):
        es = decode_embedding_set([[1, 2], [3, 4]])
        assert isinstance(es, MultipleEmbeddings)

    def test_empty_list_means_not_enrolled(self):
        assert decode_embedding_set("[]") is None

    @pytest.mark.parametrize("raw", [
        "not json",
        '{"a": 1}',
        "0.5",
        "[[0.1, 0.2], 0.3]",
        '["a", "b"]',
        "[[0.1, NaN]]",
    ])
    def test_malformed_rejected(self, raw):
        with pytest.raises(InvalidEmbeddingError):
            decode_embedding_set(raw)


class TestEmbeddingSetVariants:
    """Tests for SingleEmbedding / MultipleEmbeddings behaviour."""

    def test_multiple_requires_vectors(self):
        with pytest.raises(InvalidEmbeddingError):
            MultipleEmbeddings(())

    def test_mixed_lengths_rejected(self):
        """Test that every vector in a set must share one dimension."""
        with pytest.raises(InvalidEmbeddingError):
            decode_embedding_set("[[1, 0, 0], [0, 1]]")
        with pytest.raises(InvalidEmbeddingError):
            make_embedding_set([[1.0, 0.0, 0.0], [0.0, 1.0]])

    def test_single_and_one_element_multiple_equivalent(self):
        """Test that both variants expose the same uniform view."""
        single = SingleEmbedding((0.6, 0.8))
        multiple = MultipleEmbeddings(((0.6, 0.8),))
        assert len(single.embeddings) == len(multiple.embeddings) == 1
        np.testing.assert_array_equal(single.embeddings[0], multiple.embeddings[0])

    def test_embeddings_of_none(self):
        assert embeddings_of(None) == []

    def test_make_embedding_set(self):
        assert isinstance(make_embedding_set([[1.0, 0.0]]), SingleEmbedding)
        assert isinstance(make_embedding_set([[1.0, 0.0], [0.0, 1.0]]), MultipleEmbeddings)
        with pytest.raises(InvalidEmbeddingError):
            make_embedding_set([])

    def test_encode_preserves_shape(self):
        """Test that the stored JSON keeps the single/multiple distinction."""
        assert json.loads(encode_embedding_set(SingleEmbedding((0.5, 0.5)))) == [0.5, 0.5]
        multiple = MultipleEmbeddings(((1.0, 0.0), (0.0, 1.0)))
        assert decode_embedding_set(encode_embedding_set(multiple)) == multiple
