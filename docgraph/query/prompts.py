"""
Query Synthesis Prompts

System prompt, fixed responses, and the grounded user prompt built from
search excerpts and graph context.
"""

from __future__ import annotations

from docgraph.types import GraphContext, SearchResult

QUERY_SYNTHESIS_SYSTEM_PROMPT = """\
You are a knowledgeable business process expert assistant. Your role is to answer questions about business processes, policies, and organizational knowledge based on the provided context.

RESPONSE GUIDELINES:
- Answer questions accurately based ONLY on the provided context
- If the context doesn't contain enough information, say so clearly
- Use clear, professional language
- Structure complex answers with markdown formatting (headers, lists, etc.)
- When mentioning specific processes, systems, or policies, cite the source
- Be concise but thorough

CITATION FORMAT:
When referencing information from the context, include inline citations like [Source: Document Name, Section X] or [Source: Document Name, Page Y].

OUTPUT FORMAT:
Provide your answer in markdown format. At the end, include a "Sources" section listing all documents referenced."""

NO_CONTEXT_RESPONSE = """\
I don't have enough information in the knowledge base to answer this question accurately.

To help me provide better answers, you can:
1. Upload relevant documents that contain information about this topic
2. Rephrase your question to be more specific
3. Ask about a different aspect of your business processes

Would you like me to help with something else?"""

QUERY_ERROR_RESPONSE = (
    "I encountered an error while processing your query. "
    "Please try again or rephrase your question."
)


def build_context_section(results: list[SearchResult], graph: GraphContext | None = None) -> str:
    """Document excerpts followed by the entity/relationship block."""
    parts: list[str] = []

    if results:
        parts.append("RELEVANT DOCUMENT EXCERPTS:\n\n")
        for i, result in enumerate(results, start=1):
            parts.append(f"--- Document {i}: {result.source_file or result.title or 'Unknown'} ---\n")
            if result.section_title:
                parts.append(f"Section: {result.section_title}\n")
            if result.page_number:
                parts.append(f"Page: {result.page_number}\n")
            parts.append(f"\n{result.content}\n\n")

    if graph is not None and graph.entities:
        parts.append("\nRELATED ENTITIES AND RELATIONSHIPS:\n\nEntities:\n")
        for entity in graph.entities:
            line = f"- {entity.name} ({entity.type})"
            if entity.description:
                line += f": {entity.description}"
            parts.append(line + "\n")

        if graph.relationships:
            parts.append("\nRelationships:\n")
            for rel in graph.relationships:
                parts.append(f"- {rel.from_entity} --[{rel.type}]--> {rel.to_entity}\n")

    return "".join(parts) or "No relevant context found in the knowledge base.\n"


def build_query_prompt(
    query: str,
    results: list[SearchResult],
    graph: GraphContext | None = None,
) -> str:
    return f"""Answer the following question based on the provided context.

{build_context_section(results, graph)}
USER QUESTION:
{query}

Provide a comprehensive answer based on the context above:"""
