"""
In-Memory Collaborators

Process-local implementations of the storage contracts in
docgraph.services.base. Used by LocalKnowledgeBase (which snapshots them to
disk) and by the test suite.

Stores:
    - InMemoryDocumentStore: Document records and status updates
    - InMemorySearchIndex: Cosine + keyword hybrid search with OData-subset filters
    - InMemoryGraphStore: Vertices keyed by normalized name, edges keyed by id
    - InMemoryEntityIndex: Canonical entities, numpy cosine search

Filter syntax (InMemorySearchIndex):
    classification eq 'internal'
    department eq null
    allowed_groups/any(g: g eq 'finance')
    (a or b) and not c

Each store exposes dump() / load() for JSON snapshots.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Callable
from typing import Any

import numpy as np

from docgraph.services.base import (
    DocumentStore,
    EntityIndex,
    GraphStore,
    SearchIndex,
    WriteOutcome,
)
from docgraph.types import (
    Chunk,
    Document,
    GraphContext,
    GraphEdge,
    GraphVertex,
    IndexedEntity,
    MentionUpdateResult,
    SearchResult,
)
from docgraph.utils.similarity import cosine_similarities
from docgraph.utils.text import normalize_entity_name, vertex_id

logger = logging.getLogger(__name__)

# Weight of the vector score in the hybrid score; keyword overlap gets the rest
VECTOR_WEIGHT = 0.7

_WORD = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    "a an and are as at be by for from how in is it of on or the to what when where which who why with".split()
)


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


class InMemoryDocumentStore(DocumentStore):
    """Document records held in a dict."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    async def get(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    async def put(self, document: Document) -> None:
        self._documents[document.id] = document

    async def update_status(self, document_id: str, fields: dict[str, Any]) -> None:
        """
        Apply a partial update.

        "{status}_at" keys go into stage_timestamps; other keys must be
        Document fields.
        """
        document = self._documents.get(document_id)
        if document is None:
            document = Document(id=document_id, blob_ref="")

        timestamps = dict(document.stage_timestamps)
        update: dict[str, Any] = {}
        for key, value in fields.items():
            if key.endswith("_at") and key not in Document.model_fields:
                timestamps[key] = value
            elif key in Document.model_fields:
                update[key] = value
            else:
                logger.debug(f"Ignoring unknown document field '{key}' for {document_id}")
        update["stage_timestamps"] = timestamps

        self._documents[document_id] = Document.model_validate(
            {**document.model_dump(), **update}
        )

    def list_documents(self) -> list[Document]:
        return list(self._documents.values())

    def dump(self) -> list[dict[str, Any]]:
        return [d.model_dump(mode="json") for d in self._documents.values()]

    def load(self, data: list[dict[str, Any]]) -> None:
        self._documents = {d["id"]: Document.model_validate(d) for d in data}


# -----------------------------------------------------------------------------
# Search filter
# -----------------------------------------------------------------------------

Predicate = Callable[[dict[str, Any]], bool]

_FILTER_TOKEN = re.compile(
    r"\s*(?:(?P<lp>\()|(?P<rp>\))|(?P<colon>:)"
    r"|'(?P<str>(?:[^']|'')*)'"
    r"|(?P<num>-?\d+(?:\.\d+)?)"
    r"|(?P<word>[A-Za-z_][A-Za-z0-9_./]*))"
)


class FilterSyntaxError(ValueError):
    """Raised for filter expressions outside the supported subset."""


def _tokenize(expression: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    pos = 0
    while pos < len(expression):
        if expression[pos:].strip() == "":
            break
        match = _FILTER_TOKEN.match(expression, pos)
        if not match or match.end() == pos:
            raise FilterSyntaxError(f"Unexpected input at {pos}: {expression[pos:pos + 20]!r}")
        kind = match.lastgroup
        value: Any = match.group(kind)
        if kind == "str":
            value = value.replace("''", "'")
        elif kind == "num":
            value = float(value) if "." in value else int(value)
        tokens.append((kind, value))
        pos = match.end()
    return tokens


def _is_null(value: Any) -> bool:
    return value is None or value == [] or value == ""


class _FilterParser:
    """Recursive-descent parser producing a predicate over a field dict."""

    def __init__(self, expression: str) -> None:
        self._tokens = _tokenize(expression)
        self._pos = 0

    def parse(self) -> Predicate:
        predicate = self._or()
        if self._pos != len(self._tokens):
            raise FilterSyntaxError(f"Unexpected token {self._tokens[self._pos][1]!r}")
        return predicate

    def _peek(self) -> tuple[str, Any] | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> tuple[str, Any]:
        token = self._peek()
        if token is None:
            raise FilterSyntaxError("Unexpected end of filter")
        self._pos += 1
        return token

    def _keyword(self, word: str) -> bool:
        token = self._peek()
        if token and token[0] == "word" and token[1].lower() == word:
            self._pos += 1
            return True
        return False

    def _expect(self, kind: str) -> Any:
        token = self._next()
        if token[0] != kind:
            raise FilterSyntaxError(f"Expected {kind}, got {token[1]!r}")
        return token[1]

    def _or(self) -> Predicate:
        parts = [self._and()]
        while self._keyword("or"):
            parts.append(self._and())
        if len(parts) == 1:
            return parts[0]
        return lambda scope: any(p(scope) for p in parts)

    def _and(self) -> Predicate:
        parts = [self._unary()]
        while self._keyword("and"):
            parts.append(self._unary())
        if len(parts) == 1:
            return parts[0]
        return lambda scope: all(p(scope) for p in parts)

    def _unary(self) -> Predicate:
        if self._keyword("not"):
            inner = self._unary()
            return lambda scope: not inner(scope)
        token = self._peek()
        if token and token[0] == "lp":
            self._pos += 1
            inner = self._or()
            self._expect("rp")
            return inner
        return self._comparison()

    def _comparison(self) -> Predicate:
        field = self._expect("word")
        if field.endswith("/any"):
            return self._any(field[: -len("/any")])

        op = self._expect("word").lower()
        kind, value = self._next()
        if kind == "word":
            literal = {"null": None, "true": True, "false": False}
            if value.lower() not in literal:
                raise FilterSyntaxError(f"Unsupported value {value!r}")
            value = literal[value.lower()]
        elif kind not in ("str", "num"):
            raise FilterSyntaxError(f"Unsupported value {value!r}")

        if op == "eq":
            if value is None:
                return lambda scope: _is_null(scope.get(field))
            return lambda scope: scope.get(field) == value
        if op == "ne":
            if value is None:
                return lambda scope: not _is_null(scope.get(field))
            return lambda scope: scope.get(field) != value
        raise FilterSyntaxError(f"Unsupported operator {op!r}")

    def _any(self, field: str) -> Predicate:
        self._expect("lp")
        variable = self._expect("word")
        self._expect("colon")
        inner = self._or()
        self._expect("rp")

        def predicate(scope: dict[str, Any]) -> bool:
            values = scope.get(field) or []
            return any(inner({**scope, variable: v}) for v in values)

        return predicate


def compile_filter(expression: str | None) -> Predicate | None:
    """
    Compile a filter expression into a predicate over a field dict.

    Returns None for an empty expression.

    Raises:
        FilterSyntaxError: On unsupported syntax
    """
    if not expression or not expression.strip():
        return None
    return _FilterParser(expression).parse()


# -----------------------------------------------------------------------------
# Search
# -----------------------------------------------------------------------------


def _terms(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if w not in _STOPWORDS}


class InMemorySearchIndex(SearchIndex):
    """
    Hybrid chunk search.

    Score = VECTOR_WEIGHT * cosine + (1 - VECTOR_WEIGHT) * keyword overlap,
    where keyword overlap is the share of query terms found in the chunk.

    Args:
        documents: When given, each indexed chunk inherits its document's
            classification, allowed_groups and department
    """

    def __init__(self, documents: DocumentStore | None = None) -> None:
        self._documents = documents
        self._entries: dict[str, SearchResult] = {}
        self._vectors: dict[str, list[float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def index_documents(self, chunks: list[Chunk]) -> int:
        security: dict[str, dict[str, Any]] = {}
        for chunk in chunks:
            if chunk.document_id not in security:
                security[chunk.document_id] = await self._security_fields(chunk.document_id)
            self._entries[chunk.id] = SearchResult(
                id=chunk.id,
                document_id=chunk.document_id,
                content=chunk.content,
                chunk_type=chunk.chunk_type,
                title=chunk.title,
                source_file=chunk.source_file,
                section_title=chunk.section_title,
                page_number=chunk.page_number,
                entities=list(chunk.entities),
                **security[chunk.document_id],
            )
            if chunk.content_vector:
                self._vectors[chunk.id] = list(chunk.content_vector)
            else:
                self._vectors.pop(chunk.id, None)
        logger.debug(f"Indexed {len(chunks)} chunks ({len(self._entries)} total)")
        return len(chunks)

    async def _security_fields(self, document_id: str) -> dict[str, Any]:
        if self._documents is None:
            return {}
        document = await self._documents.get(document_id)
        if document is None:
            return {}
        return {
            "classification": document.classification,
            "allowed_groups": list(document.allowed_groups),
            "department": document.department,
        }

    async def delete_by_document_id(self, document_id: str) -> int:
        ids = [i for i, e in self._entries.items() if e.document_id == document_id]
        for i in ids:
            del self._entries[i]
            self._vectors.pop(i, None)
        return len(ids)

    async def search(
        self,
        query: str,
        vector: list[float] | None,
        *,
        top: int = 10,
        semantic: bool = True,
        filter: str | None = None,
    ) -> list[SearchResult]:
        predicate = compile_filter(filter)
        candidates = [
            e for e in self._entries.values()
            if predicate is None or predicate(e.model_dump())
        ]
        if not candidates:
            return []

        query_terms = _terms(query)
        keyword = np.array(
            [
                len(query_terms & _terms(e.content)) / len(query_terms) if query_terms else 0.0
                for e in candidates
            ]
        )

        cosine = np.zeros(len(candidates))
        if semantic and vector:
            with_vectors = [
                (i, self._vectors[e.id])
                for i, e in enumerate(candidates)
                if len(self._vectors.get(e.id, ())) == len(vector)
            ]
            if with_vectors:
                sims = cosine_similarities(vector, [v for _, v in with_vectors])
                for (i, _), sim in zip(with_vectors, sims):
                    cosine[i] = max(0.0, float(sim))
            scores = VECTOR_WEIGHT * cosine + (1 - VECTOR_WEIGHT) * keyword
        else:
            scores = keyword

        order = np.argsort(-scores, kind="stable")
        return [
            candidates[i].model_copy(update={"score": float(scores[i])})
            for i in order[:top]
            if scores[i] > 0
        ]

    def dump(self) -> list[dict[str, Any]]:
        return [
            {**e.model_dump(mode="json"), "content_vector": self._vectors.get(i)}
            for i, e in self._entries.items()
        ]

    def load(self, data: list[dict[str, Any]]) -> None:
        self._entries = {}
        self._vectors = {}
        for item in data:
            item = dict(item)
            vector = item.pop("content_vector", None)
            entry = SearchResult.model_validate(item)
            self._entries[entry.id] = entry
            if vector:
                self._vectors[entry.id] = vector


# -----------------------------------------------------------------------------
# Graph
# -----------------------------------------------------------------------------


class InMemoryGraphStore(GraphStore):
    """
    Entity graph held in dicts.

    Vertices are keyed by normalized name, so the same entity written from
    two documents is one vertex listing both in source_document_ids.
    """

    def __init__(self) -> None:
        self._vertices: dict[str, GraphVertex] = {}
        self._edges: dict[str, GraphEdge] = {}

    @property
    def vertices(self) -> list[GraphVertex]:
        return list(self._vertices.values())

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    def get_vertex(self, name: str) -> GraphVertex | None:
        return self._vertices.get(vertex_id(name))

    async def upsert_vertex(self, vertex: GraphVertex) -> WriteOutcome:
        """Add, or update only when confidence rises or a description is added."""
        key = vertex_id(vertex.name)
        existing = self._vertices.get(key)
        if existing is None:
            self._vertices[key] = vertex.model_copy(update={"id": key})
            return "added"

        source_docs = list(existing.source_document_ids)
        for doc in vertex.source_document_ids:
            if doc not in source_docs:
                source_docs.append(doc)
        update: dict[str, Any] = {"source_document_ids": source_docs}

        higher_confidence = vertex.confidence > existing.confidence
        adds_description = bool(vertex.description) and not existing.description
        if higher_confidence:
            update["confidence"] = vertex.confidence
        if adds_description:
            update["description"] = vertex.description

        self._vertices[key] = existing.model_copy(update=update)
        return "updated" if higher_confidence or adds_description else "skipped"

    async def upsert_edge(self, edge: GraphEdge) -> WriteOutcome:
        existing = self._edges.get(edge.id)
        if existing is None:
            self._edges[edge.id] = edge
            return "added"
        if edge.confidence > existing.confidence or (edge.evidence and not existing.evidence):
            self._edges[edge.id] = existing.model_copy(
                update={
                    "confidence": max(edge.confidence, existing.confidence),
                    "evidence": existing.evidence or edge.evidence,
                }
            )
            return "updated"
        return "skipped"

    async def delete_edges_by_document(self, document_id: str) -> int:
        ids = [i for i, e in self._edges.items() if e.source_document_id == document_id]
        for i in ids:
            del self._edges[i]
        return len(ids)

    async def find_related(self, entity_names: list[str], depth: int = 2) -> GraphContext:
        """
        Breadth-first traversal (edges in both directions) from the named
        vertices, up to `depth` hops. Seed vertices are included.
        """
        seeds = [vertex_id(n) for n in entity_names if vertex_id(n) in self._vertices]
        if not seeds:
            return GraphContext()

        adjacency: dict[str, list[GraphEdge]] = {}
        for edge in self._edges.values():
            adjacency.setdefault(vertex_id(edge.from_entity), []).append(edge)
            adjacency.setdefault(vertex_id(edge.to_entity), []).append(edge)

        visited = set(seeds)
        edge_ids: dict[str, GraphEdge] = {}
        queue = deque((s, 0) for s in seeds)
        while queue:
            key, hops = queue.popleft()
            if hops >= depth:
                continue
            for edge in adjacency.get(key, []):
                edge_ids.setdefault(edge.id, edge)
                for endpoint in (vertex_id(edge.from_entity), vertex_id(edge.to_entity)):
                    if endpoint not in visited and endpoint in self._vertices:
                        visited.add(endpoint)
                        queue.append((endpoint, hops + 1))

        relationships = [
            e for e in edge_ids.values()
            if vertex_id(e.from_entity) in visited and vertex_id(e.to_entity) in visited
        ]
        return GraphContext(
            entities=[self._vertices[k] for k in visited],
            relationships=relationships,
        )

    async def batch_update_mention_counts(self, counts: dict[str, int]) -> MentionUpdateResult:
        result = MentionUpdateResult()
        for name, count in counts.items():
            key = vertex_id(name)
            vertex = self._vertices.get(key)
            if vertex is None:
                result.not_found += 1
                continue
            if count <= 0:
                result.skipped += 1
                continue
            self._vertices[key] = vertex.model_copy(
                update={"mention_count": vertex.mention_count + count}
            )
            result.updated += 1
        return result

    def dump(self) -> dict[str, Any]:
        return {
            "vertices": [v.model_dump(mode="json") for v in self._vertices.values()],
            "edges": [e.model_dump(mode="json", by_alias=True) for e in self._edges.values()],
        }

    def load(self, data: dict[str, Any]) -> None:
        self._vertices = {
            v.id: v for v in (GraphVertex.model_validate(d) for d in data.get("vertices", []))
        }
        self._edges = {
            e.id: e for e in (GraphEdge.model_validate(d) for d in data.get("edges", []))
        }


# -----------------------------------------------------------------------------
# Entity index
# -----------------------------------------------------------------------------


class InMemoryEntityIndex(EntityIndex):
    """Canonical entities with combined vectors, searched by cosine similarity."""

    def __init__(self) -> None:
        self._entities: dict[str, IndexedEntity] = {}

    def __len__(self) -> int:
        return len(self._entities)

    async def search_similar(
        self,
        vector: list[float],
        *,
        top: int = 10,
        exclude_document_id: str | None = None,
        entity_type: str | None = None,
    ) -> list[IndexedEntity]:
        candidates = [
            e for e in self._entities.values()
            if e.combined_vector
            and len(e.combined_vector) == len(vector)
            and (exclude_document_id is None or exclude_document_id not in e.source_document_ids)
            and (entity_type is None or e.type == entity_type)
        ]
        if not candidates or not vector:
            return []

        sims = cosine_similarities(vector, [e.combined_vector for e in candidates])
        order = np.argsort(-sims, kind="stable")[:top]
        return [candidates[i].model_copy(update={"similarity": float(sims[i])}) for i in order]

    async def get_by_name(self, normalized_name: str) -> IndexedEntity | None:
        key = normalize_entity_name(normalized_name)
        for entity in self._entities.values():
            if entity.normalized_name == key:
                return entity
        return None

    async def upsert(self, entity: IndexedEntity) -> None:
        self._entities[entity.id] = entity.model_copy(update={"similarity": None})

    async def entities_for_document(self, document_id: str) -> list[IndexedEntity]:
        return [e for e in self._entities.values() if document_id in e.source_document_ids]

    def dump(self) -> list[dict[str, Any]]:
        return [e.model_dump(mode="json") for e in self._entities.values()]

    def load(self, data: list[dict[str, Any]]) -> None:
        self._entities = {
            e.id: e for e in (IndexedEntity.model_validate(d) for d in data)
        }
