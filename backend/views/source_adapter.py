import logging
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import MissingCredentialsError, UnsupportedDataTypeError
from views.enums import IntegrationSource
from views.schemas.retrieval import RetrievalOptions

logger = logging.getLogger(__name__)

REDACTED = "***"


class SourceAdapter:
    """Base class translating a generic fetch into one vendor's API calls"""

    source: IntegrationSource
    supported_data_types: Tuple[str, ...] = ()
    default_data_type: str = "data"
    # Credential fields that must be present before fetching
    required_credentials: Tuple[str, ...] = ()
    # Credential fields echoed in metadata as-is; everything else is redacted
    public_credentials: Tuple[str, ...] = ()

    def ensure_supported(self, data_type: str) -> None:
        if data_type not in self.supported_data_types:
            raise UnsupportedDataTypeError(self.source.value, data_type, self.supported_data_types)

    def check_credentials(self, credentials: Dict[str, Any]) -> None:
        missing = [field for field in self.required_credentials if not credentials.get(field)]
        if missing:
            raise MissingCredentialsError(self.source.value, missing)

    def redact(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """Credentials safe to attach to response metadata"""
        redacted: Dict[str, Any] = {}
        for field, value in credentials.items():
            if value is None:
                continue
            redacted[field] = value if field in self.public_credentials else REDACTED
        return redacted

    async def fetch(
        self, credentials: Dict[str, Any], data_type: str, options: RetrievalOptions
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError


def paginate(records: List[Dict[str, Any]], options: RetrievalOptions) -> List[Dict[str, Any]]:
    """Apply offset/limit to a full result set"""
    start = options.offset or 0
    if options.limit is None:
        return records[start:]
    return records[start : start + options.limit]


class AdapterRegistry:
    """Adapters keyed by source"""

    def __init__(self, adapters: Optional[List[SourceAdapter]] = None):
        self._adapters: Dict[IntegrationSource, SourceAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: SourceAdapter) -> None:
        self._adapters[adapter.source] = adapter

    def get(self, source: IntegrationSource) -> Optional[SourceAdapter]:
        return self._adapters.get(source)

    def get_adapter(self, source: IntegrationSource, data_type: str) -> SourceAdapter:
        """Adapter for source, raising UnsupportedDataTypeError when none is registered"""
        adapter = self._adapters.get(source)
        if adapter is None:
            raise UnsupportedDataTypeError(source.value, data_type)
        return adapter

    def __contains__(self, source: IntegrationSource) -> bool:
        return source in self._adapters
