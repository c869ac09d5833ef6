"""Custom exceptions for the meta search service."""

from enum import Enum
from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .search.models import EngineDescriptor


class MetaSearchError(Exception):
    """Base exception for meta search errors."""

    pass


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    PARSE_FAILURE = "parse_failure"
    UNSUPPORTED = "unsupported"


class ProviderError(MetaSearchError):
    """Raised by a provider that could not complete a request.

    An engine that simply finds nothing returns an empty list instead.
    """

    def __init__(self, kind: ProviderErrorKind, message: str = "", engine: Optional[str] = None):
        self.kind = kind
        self.message = message or kind.value
        self.engine = engine
        super().__init__(f"{engine or 'provider'}: {kind.value}: {self.message}")

    @property
    def is_permanent(self) -> bool:
        return self.kind == ProviderErrorKind.UNSUPPORTED

    def to_dict(self):
        return {"engine": self.engine, "kind": self.kind.value, "message": self.message}


class AggregationError(MetaSearchError):
    """Raised when aggregation cannot produce an outcome."""

    pass


class AllProvidersUnreachable(AggregationError):
    """Every leg of every attempted tier failed."""

    def __init__(self, failures: List[Tuple["EngineDescriptor", ProviderError]]):
        self.failures = list(failures)
        engines = ", ".join(descriptor.name for descriptor, _ in self.failures) or "none"
        super().__init__(f"No search provider could be reached (attempted: {engines})")


class ValidationError(MetaSearchError):
    """Raised for bad caller input, before any provider is invoked."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def to_dict(self):
        return {"field": self.field, "message": self.message}


class StorageError(MetaSearchError):
    """Raised when the history/preferences store fails."""

    pass
