"""Tests for cross-document entity resolution and link discovery."""

import math
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from docgraph.config import DocGraphConfig
from docgraph.ingestion.resolution import EntityResolver
from docgraph.ingestion.resolution.entity_resolver import RESOLUTION_SOURCE, embedding_text
from docgraph.storage import InMemoryEntityIndex, InMemoryGraphStore
from docgraph.types import ExtractedEntity, IndexedEntity, ResolveOptions


def _vec(similarity: float) -> list[float]:
    """A unit vector with the given cosine similarity to [1, 0, 0]."""
    return [similarity, math.sqrt(1 - similarity**2), 0.0]


CANONICAL = [1.0, 0.0, 0.0]


def _embeddings(vectors: dict[str, list[float]]) -> MagicMock:
    embeddings = MagicMock()
    embeddings.embed = AsyncMock(side_effect=lambda texts: [vectors[t] for t in texts])
    return embeddings


@pytest_asyncio.fixture
async def index() -> InMemoryEntityIndex:
    index = InMemoryEntityIndex()
    await index.upsert(
        IndexedEntity(
            id="finance-1",
            name="Finance Team",
            normalized_name="finance team",
            type="Organization",
            description="Handles invoices",
            confidence=0.8,
            source_document_ids=["doc-0"],
            combined_vector=CANONICAL,
        )
    )
    return index


@pytest.fixture
def graph() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def config() -> DocGraphConfig:
    return DocGraphConfig(embedding_batch_size=2)


class TestEmbeddingText:
    """Test the text embedded for matching."""

    def test_includes_meaningful_description(self) -> None:
        entity = ExtractedEntity(name="AP Team", description="Pays vendor invoices")
        assert embedding_text(entity) == "AP Team: Pays vendor invoices"

    def test_short_description_uses_name(self) -> None:
        assert embedding_text(ExtractedEntity(name="AP Team", description="team")) == "AP Team"


class TestResolutionThresholds:
    """Each similarity band maps to one action."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "similarity, action, resolved_to",
        [
            (1.0, "exact_match", "Finance Team"),
            (0.95, "merged", "Finance Team"),
            (0.88, "linked_same_as", "Finance Dept"),
            (0.80, "linked_similar", "Finance Dept"),
            (0.50, "created", "Finance Dept"),
        ],
    )
    async def test_bands(
        self, index, graph, config, similarity: float, action: str, resolved_to: str
    ) -> None:
        resolver = EntityResolver(index, graph, _embeddings({"Finance Dept": _vec(similarity)}), config)
        result = await resolver.resolve([ExtractedEntity(name="Finance Dept")], "doc-1")

        resolved = result.resolved[0]
        assert resolved.action == action
        assert resolved.resolved_to == resolved_to
        assert resolved.similarity == pytest.approx(similarity)
        assert result.fallback_reason is None

    @pytest.mark.asyncio
    async def test_exact_match_leaves_index_unchanged(self, index, graph, config) -> None:
        resolver = EntityResolver(index, graph, _embeddings({"Finance Dept": CANONICAL}), config)
        result = await resolver.resolve([ExtractedEntity(name="Finance Dept")], "doc-1")

        assert result.exact_match == 1
        assert len(index) == 1
        assert graph.edges == []

    @pytest.mark.asyncio
    async def test_merge_updates_canonical(self, index, graph, config) -> None:
        entity = ExtractedEntity(
            name="Finance Dept",
            description="Handles invoices and vendor payments",
            confidence=1.0,
        )
        text = "Finance Dept: Handles invoices and vendor payments"
        resolver = EntityResolver(index, graph, _embeddings({text: _vec(0.95)}), config)
        result = await resolver.resolve([entity], "doc-1")

        assert result.merged == 1
        merged = await index.get_by_name("finance team")
        assert merged.aliases == ["Finance Dept"]
        assert merged.source_document_ids == ["doc-0", "doc-1"]
        assert merged.description == "Handles invoices and vendor payments"
        assert merged.confidence == pytest.approx(0.9)
        assert merged.mention_count == 2
        assert merged.combined_vector == CANONICAL

    @pytest.mark.asyncio
    async def test_same_as_creates_entry_and_edge(self, index, graph, config) -> None:
        resolver = EntityResolver(index, graph, _embeddings({"Finance Dept": _vec(0.88)}), config)
        result = await resolver.resolve([ExtractedEntity(name="Finance Dept")], "doc-1")

        assert result.linked_same_as == 1
        assert len(index) == 2
        (edge,) = graph.edges
        assert edge.type == "SAME_AS"
        assert edge.from_entity == "Finance Dept"
        assert edge.to_entity == "Finance Team"
        assert edge.source_document_id == RESOLUTION_SOURCE
        assert edge.evidence == "Embedding similarity: 0.8800"

    @pytest.mark.asyncio
    async def test_link_write_failure_is_not_fatal(self, index, config) -> None:
        graph = MagicMock()
        graph.upsert_edge = AsyncMock(side_effect=RuntimeError("graph down"))
        resolver = EntityResolver(index, graph, _embeddings({"Finance Dept": _vec(0.80)}), config)

        result = await resolver.resolve([ExtractedEntity(name="Finance Dept")], "doc-1")
        assert result.linked_similar == 1
        assert result.fallback_reason is None


class TestResolutionOptions:
    """Test candidate filtering options."""

    @pytest.mark.asyncio
    async def test_exclude_same_document(self, index, graph, config) -> None:
        resolver = EntityResolver(index, graph, _embeddings({"Finance Dept": CANONICAL}), config)
        result = await resolver.resolve(
            [ExtractedEntity(name="Finance Dept")],
            "doc-0",
            ResolveOptions(exclude_same_document=True),
        )
        assert result.resolved[0].action == "created"

    @pytest.mark.asyncio
    async def test_strict_type_matching(self, index, graph, config) -> None:
        resolver = EntityResolver(index, graph, _embeddings({"Finance Dept": CANONICAL}), config)
        result = await resolver.resolve(
            [ExtractedEntity(name="Finance Dept", type="Person")],
            "doc-1",
            ResolveOptions(strict_type_matching=True),
        )
        assert result.resolved[0].action == "created"


class TestInDocumentDeduplication:
    """Repeated names resolve once per document."""

    @pytest.mark.asyncio
    async def test_repeats_marked(self, index, graph, config) -> None:
        embeddings = _embeddings({"Finance Dept": _vec(0.5)})
        resolver = EntityResolver(index, graph, embeddings, config)
        result = await resolver.resolve(
            [ExtractedEntity(name="Finance Dept"), ExtractedEntity(name="  finance dept")],
            "doc-1",
        )

        assert [e.action for e in result.resolved] == ["created", "deduplicated_in_document"]
        assert result.resolved[1].resolved_to == "Finance Dept"
        assert result.created == 1
        embeddings.embed.assert_awaited_once_with(["Finance Dept"])

    @pytest.mark.asyncio
    async def test_embeds_in_batches(self, index, graph, config) -> None:
        names = ["A", "B", "C"]
        embeddings = _embeddings({n: _vec(0.1) for n in names})
        resolver = EntityResolver(index, graph, embeddings, config)
        await resolver.resolve([ExtractedEntity(name=n) for n in names], "doc-1")

        assert [c.args[0] for c in embeddings.embed.await_args_list] == [["A", "B"], ["C"]]


class TestFallback:
    """Failures never abort ingestion."""

    @pytest.mark.asyncio
    async def test_embedding_failure(self, index, graph, config) -> None:
        embeddings = MagicMock()
        embeddings.embed = AsyncMock(side_effect=RuntimeError("rate limited"))
        resolver = EntityResolver(index, graph, embeddings, config)

        entities = [ExtractedEntity(name="A"), ExtractedEntity(name="B")]
        result = await resolver.resolve(entities, "doc-1")

        assert result.fallback_reason == "rate limited"
        assert result.created == 2
        assert [e.action for e in result.resolved] == ["fallback", "fallback"]
        assert [e.resolved_to for e in result.resolved] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_embedding_count_mismatch(self, index, graph, config) -> None:
        embeddings = MagicMock()
        embeddings.embed = AsyncMock(return_value=[])
        result = await EntityResolver(index, graph, embeddings, config).resolve(
            [ExtractedEntity(name="A")], "doc-1"
        )
        assert "Expected 1 entity embeddings" in result.fallback_reason


class TestCrossDocumentDiscovery:
    """Test similarity links to other documents' entities."""

    @pytest.mark.asyncio
    async def test_discovers_links(self, index, graph, config) -> None:
        for name, similarity in (("Finance Dept", 0.9), ("Payroll", 0.78), ("Legal", 0.2)):
            await index.upsert(
                IndexedEntity(
                    id=name,
                    name=name,
                    normalized_name=name.lower(),
                    source_document_ids=["doc-1"],
                    combined_vector=_vec(similarity),
                )
            )

        resolver = EntityResolver(index, graph, MagicMock(), config)
        result = await resolver.discover_cross_document_relationships("doc-1", min_similarity=0.75)

        assert result.error is None
        assert result.entities_analyzed == 3
        links = {(link.entity1_name, link.entity2_name): link for link in result.links}
        assert set(links) == {("Finance Dept", "Finance Team"), ("Payroll", "Finance Team")}
        assert links[("Finance Dept", "Finance Team")].relationship_type == "SAME_AS"
        assert links[("Payroll", "Finance Team")].relationship_type == "SIMILAR_TO"

    @pytest.mark.asyncio
    async def test_failure_returns_error(self, graph, config) -> None:
        index = MagicMock()
        index.entities_for_document = AsyncMock(side_effect=RuntimeError("index offline"))
        result = await EntityResolver(index, graph, MagicMock(), config).discover_cross_document_relationships("doc-1")

        assert result.links == []
        assert result.error == "index offline"
