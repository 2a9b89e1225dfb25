"""Tests for the in-memory stores, filter expressions and the local snapshot."""

import json

import pytest

from docgraph.storage import (
    FilterSyntaxError,
    InMemoryDocumentStore,
    InMemoryEntityIndex,
    InMemoryGraphStore,
    InMemorySearchIndex,
    LocalKnowledgeBase,
    compile_filter,
)
from docgraph.types import Chunk, Document, DocumentStatus, GraphEdge, GraphVertex, IndexedEntity


def _chunk(chunk_id: str, content: str, vector=None, document_id: str = "doc-1") -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        chunk_index=0,
        content=content,
        content_vector=vector,
    )


def _edge(a: str, b: str, edge_type: str = "RELATED_TO", doc: str = "doc-1") -> GraphEdge:
    return GraphEdge(
        id=f"{a}|{edge_type}|{b}|{doc}",
        from_entity=a,
        to_entity=b,
        type=edge_type,
        source_document_id=doc,
    )


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


class TestInMemoryDocumentStore:
    """Test document records and partial updates."""

    @pytest.mark.asyncio
    async def test_update_status_routes_timestamps(self) -> None:
        store = InMemoryDocumentStore()
        await store.put(Document(id="doc-1", blob_ref="a.md"))

        await store.update_status(
            "doc-1",
            {
                "status": DocumentStatus.CHUNKING.value,
                "processing_stage": "chunking",
                "chunking_at": "2026-01-01T00:00:00+00:00",
                "unknown_field": 1,
            },
        )

        document = await store.get("doc-1")
        assert document.status == "chunking"
        assert document.processing_stage == "chunking"
        assert document.stage_timestamps == {"chunking_at": "2026-01-01T00:00:00+00:00"}
        assert document.blob_ref == "a.md"

    @pytest.mark.asyncio
    async def test_update_unknown_document_creates_record(self) -> None:
        store = InMemoryDocumentStore()
        await store.update_status("doc-9", {"status": "failed", "processing_error": "boom"})

        document = await store.get("doc-9")
        assert document.status == "failed"
        assert document.processing_error == "boom"

    @pytest.mark.asyncio
    async def test_dump_load(self) -> None:
        store = InMemoryDocumentStore()
        await store.put(Document(id="doc-1", blob_ref="a.md", allowed_groups=["hr"]))

        restored = InMemoryDocumentStore()
        restored.load(store.dump())
        assert (await restored.get("doc-1")).allowed_groups == ["hr"]


# -----------------------------------------------------------------------------
# Filters
# -----------------------------------------------------------------------------


class TestCompileFilter:
    """Test the filter expression subset."""

    def test_empty_is_none(self) -> None:
        assert compile_filter(None) is None
        assert compile_filter("   ") is None

    def test_eq_and_ne(self) -> None:
        predicate = compile_filter("classification eq 'internal'")
        assert predicate({"classification": "internal"})
        assert not predicate({"classification": "public"})
        assert compile_filter("page_number ne 3")({"page_number": 4})

    def test_null_matches_missing_and_empty(self) -> None:
        predicate = compile_filter("department eq null")
        assert predicate({})
        assert predicate({"department": ""})
        assert predicate({"department": None})
        assert not predicate({"department": "finance"})
        assert compile_filter("allowed_groups ne null")({"allowed_groups": ["hr"]})

    def test_any(self) -> None:
        predicate = compile_filter("allowed_groups/any(g: g eq 'finance' or g eq 'hr')")
        assert predicate({"allowed_groups": ["sales", "hr"]})
        assert not predicate({"allowed_groups": ["sales"]})
        assert not predicate({"allowed_groups": []})

    def test_precedence_and_not(self) -> None:
        predicate = compile_filter("a eq 1 or b eq 2 and not (c eq true)")
        assert predicate({"a": 1})
        assert predicate({"b": 2, "c": False})
        assert not predicate({"b": 2, "c": True})

    def test_escaped_quotes(self) -> None:
        assert compile_filter("title eq 'O''Brien'")({"title": "O'Brien"})

    @pytest.mark.parametrize(
        "expression",
        ["classification eq", "classification gt 'a'", "(a eq 1", "a eq 1 )", "a eq maybe", "a eq 'x' #"],
    )
    def test_syntax_errors(self, expression: str) -> None:
        with pytest.raises(FilterSyntaxError):
            compile_filter(expression)


# -----------------------------------------------------------------------------
# Search
# -----------------------------------------------------------------------------


class TestInMemorySearchIndex:
    """Test hybrid search."""

    @pytest.mark.asyncio
    async def test_inherits_document_security_fields(self) -> None:
        documents = InMemoryDocumentStore()
        await documents.put(
            Document(
                id="doc-1",
                blob_ref="a.md",
                classification="confidential",
                allowed_groups=["finance"],
                department="finance",
            )
        )
        index = InMemorySearchIndex(documents)
        await index.index_documents([_chunk("c1", "Invoice approvals")])

        (hit,) = await index.search("invoice", None)
        assert hit.classification == "confidential"
        assert hit.allowed_groups == ["finance"]
        assert hit.department == "finance"

    @pytest.mark.asyncio
    async def test_hybrid_scoring(self) -> None:
        index = InMemorySearchIndex()
        await index.index_documents(
            [
                _chunk("vector", "unrelated words", vector=[1.0, 0.0]),
                _chunk("keyword", "invoice approval steps", vector=[0.0, 1.0]),
                _chunk("neither", "lunch menu", vector=[0.0, 1.0]),
            ]
        )

        results = await index.search("invoice approval", [1.0, 0.0])
        assert [r.id for r in results] == ["vector", "keyword"]
        assert results[0].score == pytest.approx(0.7)
        assert results[1].score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_keyword_only_when_not_semantic(self) -> None:
        index = InMemorySearchIndex()
        await index.index_documents([_chunk("c1", "invoice approval", vector=[1.0, 0.0])])

        (hit,) = await index.search("the invoice", [1.0, 0.0], semantic=False)
        assert hit.score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_filter_and_top(self) -> None:
        documents = InMemoryDocumentStore()
        await documents.put(Document(id="pub", blob_ref="", classification="public"))
        await documents.put(Document(id="sec", blob_ref="", classification="restricted"))
        index = InMemorySearchIndex(documents)
        await index.index_documents(
            [
                _chunk("p1", "policy text", document_id="pub"),
                _chunk("p2", "policy notes", document_id="pub"),
                _chunk("s1", "policy secrets", document_id="sec"),
            ]
        )

        results = await index.search("policy", None, filter="classification ne 'restricted'")
        assert {r.id for r in results} == {"p1", "p2"}
        assert len(await index.search("policy", None, top=1)) == 1

    @pytest.mark.asyncio
    async def test_bad_filter_raises(self) -> None:
        index = InMemorySearchIndex()
        await index.index_documents([_chunk("c1", "text")])
        with pytest.raises(FilterSyntaxError):
            await index.search("text", None, filter="classification ~ 'x'")

    @pytest.mark.asyncio
    async def test_delete_by_document_id(self) -> None:
        index = InMemorySearchIndex()
        await index.index_documents(
            [_chunk("a", "alpha"), _chunk("b", "beta", document_id="doc-2")]
        )
        assert await index.delete_by_document_id("doc-1") == 1
        assert len(index) == 1
        assert await index.search("alpha", None) == []


# -----------------------------------------------------------------------------
# Graph
# -----------------------------------------------------------------------------


class TestInMemoryGraphStore:
    """Test traversal and mention counts."""

    @pytest.mark.asyncio
    async def test_traversal_depths(self) -> None:
        graph = InMemoryGraphStore()
        for name in ("Alice", "Finance Team", "SAP", "Vendor"):
            await graph.upsert_vertex(GraphVertex(id="", name=name))
        await graph.upsert_edge(_edge("Alice", "Finance Team", "PART_OF"))
        await graph.upsert_edge(_edge("Finance Team", "SAP", "USES"))
        await graph.upsert_edge(_edge("SAP", "Vendor", "CONTAINS"))

        one_hop = await graph.find_related(["finance team"], depth=1)
        assert {v.name for v in one_hop.entities} == {"Alice", "Finance Team", "SAP"}
        assert {e.type for e in one_hop.relationships} == {"PART_OF", "USES"}

        two_hops = await graph.find_related(["Alice"], depth=2)
        assert {v.name for v in two_hops.entities} == {"Alice", "Finance Team", "SAP"}

        seeds_only = await graph.find_related(["Vendor"], depth=0)
        assert [v.name for v in seeds_only.entities] == ["Vendor"]
        assert seeds_only.relationships == []

        assert (await graph.find_related(["Nobody"])).entities == []

    @pytest.mark.asyncio
    async def test_mention_counts(self) -> None:
        graph = InMemoryGraphStore()
        await graph.upsert_vertex(GraphVertex(id="", name="SAP", mention_count=2))

        result = await graph.batch_update_mention_counts({"sap": 3, "Missing": 1, "SAP ": 0})
        assert (result.updated, result.not_found, result.skipped) == (1, 1, 1)
        assert graph.get_vertex("SAP").mention_count == 5

    @pytest.mark.asyncio
    async def test_edge_update_rules(self) -> None:
        graph = InMemoryGraphStore()
        edge = _edge("A", "B")
        assert await graph.upsert_edge(edge) == "added"
        assert await graph.upsert_edge(edge) == "skipped"
        assert await graph.upsert_edge(edge.model_copy(update={"evidence": "quote"})) == "updated"
        assert await graph.upsert_edge(edge.model_copy(update={"confidence": 0.95})) == "updated"
        (stored,) = graph.edges
        assert (stored.confidence, stored.evidence) == (0.95, "quote")

    @pytest.mark.asyncio
    async def test_dump_load(self) -> None:
        graph = InMemoryGraphStore()
        await graph.upsert_vertex(GraphVertex(id="", name="A"))
        await graph.upsert_edge(_edge("A", "B"))

        data = json.loads(json.dumps(graph.dump()))
        assert data["edges"][0]["from"] == "A"

        restored = InMemoryGraphStore()
        restored.load(data)
        assert restored.get_vertex("a").name == "A"
        assert restored.edges[0].to_entity == "B"


# -----------------------------------------------------------------------------
# Entity index
# -----------------------------------------------------------------------------


class TestInMemoryEntityIndex:
    """Test similarity search over canonical entities."""

    @pytest.mark.asyncio
    async def test_search_similar_orders_and_filters(self) -> None:
        index = InMemoryEntityIndex()
        entities = [
            ("close", [1.0, 0.1], "Role", ["doc-1"]),
            ("far", [0.0, 1.0], "Role", ["doc-2"]),
            ("other-type", [1.0, 0.0], "System", ["doc-2"]),
            ("wrong-dims", [1.0, 0.0, 0.0], "Role", ["doc-2"]),
        ]
        for name, vector, entity_type, docs in entities:
            await index.upsert(
                IndexedEntity(
                    id=name,
                    name=name,
                    normalized_name=name,
                    type=entity_type,
                    source_document_ids=docs,
                    combined_vector=vector,
                )
            )

        results = await index.search_similar([1.0, 0.0])
        assert [r.name for r in results] == ["other-type", "close", "far"]
        assert results[0].similarity == pytest.approx(1.0)

        typed = await index.search_similar([1.0, 0.0], entity_type="Role", exclude_document_id="doc-1")
        assert [r.name for r in typed] == ["far"]

        assert len(await index.search_similar([1.0, 0.0], top=1)) == 1

    @pytest.mark.asyncio
    async def test_upsert_clears_similarity_and_lookup_by_name(self) -> None:
        index = InMemoryEntityIndex()
        await index.upsert(
            IndexedEntity(id="1", name="AP Team", normalized_name="ap team", similarity=0.5)
        )
        entity = await index.get_by_name("  AP  Team")
        assert entity.id == "1"
        assert entity.similarity is None


# -----------------------------------------------------------------------------
# Local snapshot
# -----------------------------------------------------------------------------


class TestLocalKnowledgeBase:
    """Test the JSON snapshot round trip."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path) -> None:
        async with LocalKnowledgeBase(tmp_path / "kb") as kb:
            await kb.documents.put(Document(id="doc-1", blob_ref="a.md", classification="internal"))
            await kb.search.index_documents([_chunk("c1", "invoice policy", vector=[1.0, 0.0])])
            await kb.graph.upsert_vertex(GraphVertex(id="", name="Invoice"))
            await kb.graph.upsert_edge(_edge("Invoice", "Policy"))
            await kb.entity_index.upsert(
                IndexedEntity(id="e1", name="Invoice", normalized_name="invoice", combined_vector=[1.0, 0.0])
            )

        assert (tmp_path / "kb" / "snapshot.json").exists()
        metadata = json.loads((tmp_path / "kb" / "metadata.json").read_text())
        assert metadata["schema_version"] == LocalKnowledgeBase.SCHEMA_VERSION

        reopened = LocalKnowledgeBase(tmp_path / "kb")
        await reopened.initialize()
        stats = reopened.stats()
        assert stats["documents"] == 1
        assert stats["documents_by_status"] == {"pending": 1}
        assert (stats["chunks"], stats["vertices"], stats["edges"], stats["indexed_entities"]) == (1, 1, 1, 1)

        (hit,) = await reopened.search.search("invoice", [1.0, 0.0])
        assert hit.classification == "internal"
        assert hit.score == pytest.approx(0.7 + 0.3)

    @pytest.mark.asyncio
    async def test_new_directory_is_empty(self, tmp_path) -> None:
        kb = LocalKnowledgeBase(tmp_path / "fresh")
        await kb.initialize()
        assert kb.stats()["documents"] == 0
        assert (tmp_path / "fresh" / "metadata.json").exists()
        assert not kb.snapshot_path.exists()
