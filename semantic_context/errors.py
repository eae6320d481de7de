"""
Error taxonomy for the semantic context engine.
"""

from typing import Optional


class SemanticContextError(Exception):
    """Base exception for all semantic context errors."""
    pass


class ProviderUnavailable(SemanticContextError):
    """Raised when the embedding model is unreachable or misconfigured."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class DimensionMismatch(SemanticContextError):
    """Raised when two embedding vectors of different lengths are compared."""

    def __init__(self, left: int, right: int):
        super().__init__(
            f"Embedding dimensions differ: {left} != {right}"
        )
        self.left = left
        self.right = right


class NotFound(SemanticContextError):
    """Raised when a memory (or owner-scoped record) does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ValidationError(SemanticContextError, ValueError):
    """Raised when a request field is malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid {field}: {message}")
        self.field = field
