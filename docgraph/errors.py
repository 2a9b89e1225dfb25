"""
Exception Types

Document-fatal and configuration errors raised by docgraph. Stage-local
failures are handled inside their stage and never surface as these.
"""


class DocGraphError(Exception):
    """Base class for docgraph errors."""


class DocumentNotFoundError(DocGraphError):
    """Raised when a document id is unknown to the document store."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class ExtractionError(DocGraphError):
    """Raised by content extractors when a source cannot be read or parsed."""


class ConfigurationError(DocGraphError):
    """Raised when a configuration value is invalid."""
