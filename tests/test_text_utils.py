"""Tests for name normalization, relationship types and vector helpers."""

import pytest

from docgraph.utils.similarity import adjacent_distances, cosine_similarities, cosine_similarity
from docgraph.utils.text import (
    count_whole_word,
    edge_id,
    normalize_entity_name,
    normalize_relationship_type,
    vertex_id,
)


class TestNormalizeEntityName:
    """Test exact-match name normalization."""

    def test_lowercases_and_trims(self) -> None:
        assert normalize_entity_name("  Finance Team ") == "finance team"

    def test_collapses_whitespace(self) -> None:
        assert normalize_entity_name("Accounts\t  Payable\nTeam") == "accounts payable team"

    def test_folds_typographic_quotes_and_dashes(self) -> None:
        """Curly quotes and en dashes compare equal to their ASCII forms."""
        assert normalize_entity_name("Owner’s “Guide” – v2") == "owner's \"guide\" - v2"

    def test_empty(self) -> None:
        assert normalize_entity_name("") == ""


class TestNormalizeRelationshipType:
    """Test edge label normalization."""

    def test_synonym_maps_to_canonical(self) -> None:
        assert normalize_relationship_type("supervises") == "MANAGES"
        assert normalize_relationship_type("belongs to") == "PART_OF"

    def test_unknown_becomes_upper_snake(self) -> None:
        assert normalize_relationship_type("approves invoices for") == "APPROVES_INVOICES_FOR"

    def test_empty_is_related_to(self) -> None:
        assert normalize_relationship_type(None) == "RELATED_TO"
        assert normalize_relationship_type("   ") == "RELATED_TO"


class TestGraphIds:
    """Test vertex and edge ids."""

    def test_vertex_id_is_normalized_name(self) -> None:
        assert vertex_id(" Finance  Team") == "finance team"

    def test_edge_id_includes_source_document(self) -> None:
        assert edge_id("Alice", "MANAGES", "Finance Team", "doc-1") == "alice|MANAGES|finance team|doc-1"


class TestCountWholeWord:
    """Test word-bounded mention counting."""

    def test_counts_case_insensitively(self) -> None:
        assert count_whole_word("Invoice approved. INVOICE archived.", "invoice") == 2

    def test_ignores_partial_words(self) -> None:
        assert count_whole_word("invoices and reinvoice", "invoice") == 0

    def test_escapes_regex_characters(self) -> None:
        assert count_whole_word("Use C++ daily", "C") == 1

    def test_empty_term(self) -> None:
        assert count_whole_word("text", "") == 0


class TestSimilarity:
    """Test cosine helpers."""

    def test_identical_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_degenerate_inputs_are_zero(self) -> None:
        assert cosine_similarity([], [1.0]) == 0.0
        assert cosine_similarity([1.0, 0.0], [1.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_batch_similarities_handle_zero_vectors(self) -> None:
        sims = cosine_similarities([1.0, 0.0], [[1.0, 0.0], [0.0, 0.0], [0.0, 1.0]])
        assert sims.tolist() == pytest.approx([1.0, 0.0, 0.0])

    def test_batch_similarities_empty(self) -> None:
        assert len(cosine_similarities([1.0], [])) == 0

    def test_adjacent_distances(self) -> None:
        distances = adjacent_distances([[1.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        assert distances == pytest.approx([0.0, 1.0])
