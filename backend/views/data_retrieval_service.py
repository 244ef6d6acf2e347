"""
Retrieval across an organization's integrations.

Every call returns RetrievedData envelopes of the same shape whatever the
source. Synthetic records are only ever produced in demo mode: outside it,
vendor failures surface to the caller (single integration) or are logged
and skipped (fan-out), and an org with no integrations gets no data.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config import settings
from core.exceptions import IntegrationNotFoundError, SourceAPIError
from views.acuity_adapter import AcuityAdapter, AcuityClient
from views.enums import IntegrationSource
from views.google_adapter import GoogleAdapter
from views.integration_registry import IntegrationRegistry, integration_registry
from views.plaid_adapter import PlaidAdapter
from views.schemas.integration import Integration
from views.schemas.retrieval import (
    DataImport,
    DataImportMetadata,
    RetrievalMetadata,
    RetrievalOptions,
    RetrievedData,
)
from views.source_adapter import AdapterRegistry
from views.synthetic_data import synthetic_records

logger = logging.getLogger(__name__)

# Published capabilities for sources that have no adapter yet
UNADAPTED_CAPABILITIES: Dict[str, Dict[str, Any]] = {
    IntegrationSource.QUICKBOOKS.value: {
        "supportedTypes": ["transactions", "customers", "items", "invoices"],
        "defaultType": "transactions",
    },
}

MOCK_CREDENTIALS = {"type": "mock"}


def default_adapters() -> AdapterRegistry:
    return AdapterRegistry(
        [
            AcuityAdapter(AcuityClient(timeout=settings.RETRIEVAL_TIMEOUT_SECONDS)),
            GoogleAdapter(),
            PlaidAdapter(),
        ]
    )


class DataRetrievalService:
    def __init__(
        self,
        registry: Optional[IntegrationRegistry] = None,
        adapters: Optional[AdapterRegistry] = None,
        demo_mode: Optional[bool] = None,
        max_concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.registry = registry or integration_registry
        self.adapters = adapters or default_adapters()
        self.demo_mode = settings.demo_mode_enabled if demo_mode is None else demo_mode
        self.max_concurrency = max(1, max_concurrency or settings.RETRIEVAL_CONCURRENCY)
        self.timeout = timeout or settings.RETRIEVAL_TIMEOUT_SECONDS

    # --- capabilities ---

    def get_capabilities(self) -> Dict[str, Dict[str, Any]]:
        capabilities = dict(UNADAPTED_CAPABILITIES)
        for source in IntegrationSource:
            adapter = self.adapters.get(source)
            if adapter is not None:
                capabilities[source.value] = {
                    "supportedTypes": list(adapter.supported_data_types),
                    "defaultType": adapter.default_data_type,
                }
        return capabilities

    def get_available_data_types(self, source: str) -> List[str]:
        return self.get_capabilities().get(source, {}).get("supportedTypes", [])

    def get_default_data_type(self, source: str) -> str:
        return self.get_capabilities().get(source, {}).get("defaultType", "data")

    # --- single integration ---

    async def retrieve_from_integration(
        self,
        integration_id: str,
        data_type: Optional[str] = None,
        options: Optional[RetrievalOptions] = None,
    ) -> RetrievedData:
        """Fetch one data type from one integration.

        Raises IntegrationNotFoundError, DecryptionError, UnsupportedDataTypeError,
        MissingCredentialsError, or SourceAPIError (outside demo mode).
        """
        options = options or RetrievalOptions()
        decrypted = await self.registry.get_decrypted_by_id(integration_id)
        if decrypted is None:
            raise IntegrationNotFoundError(integration_id)

        source = decrypted.source
        data_type = data_type or self.get_default_data_type(source.value)
        adapter = self.adapters.get_adapter(source, data_type)
        adapter.ensure_supported(data_type)
        adapter.check_credentials(decrypted.credentials)

        synthetic = False
        try:
            records = await asyncio.wait_for(
                adapter.fetch(decrypted.credentials, data_type, options), timeout=self.timeout
            )
        except (SourceAPIError, asyncio.TimeoutError) as e:
            if not self.demo_mode:
                if isinstance(e, asyncio.TimeoutError):
                    raise SourceAPIError(source.value, f"no response within {self.timeout}s") from e
                raise
            logger.warning(f"{source.value} {data_type} retrieval failed ({e}), using synthetic data")
            records = synthetic_records(source.value, data_type, options.limit)
            synthetic = True

        if not synthetic:
            try:
                await self.registry.update_last_synced(integration_id)
            except Exception as e:
                logger.warning(f"Could not update lastSyncedAt for {integration_id}: {e}")

        return RetrievedData(
            source=source.value,
            data_type=data_type,
            records=records,
            metadata=RetrievalMetadata(
                total_count=len(records),
                retrieved_at=datetime.now(timezone.utc),
                integration_id=integration_id,
                credentials=adapter.redact(decrypted.credentials),
                synthetic=synthetic,
            ),
        )

    # --- fan-out ---

    def _data_types_for(self, source: IntegrationSource, data_types: Optional[List[str]]) -> List[str]:
        adapter = self.adapters.get(source)
        if not data_types:
            return [self.get_default_data_type(source.value)]
        if adapter is None:
            # Let retrieval raise and log the unsupported source
            return [data_types[0]]
        return [dt for dt in data_types if dt in adapter.supported_data_types]

    async def _retrieve_quietly(
        self,
        integration: Integration,
        data_type: str,
        options: RetrievalOptions,
        semaphore: asyncio.Semaphore,
    ) -> Optional[RetrievedData]:
        async with semaphore:
            try:
                return await self.retrieve_from_integration(integration.id, data_type, options)
            except Exception as e:
                logger.warning(f"Failed to retrieve from {integration.source.value}:{integration.id}: {e}")
                return None

    async def retrieve_from_all_integrations(
        self,
        org_id: str,
        options: Optional[RetrievalOptions] = None,
        data_types: Optional[List[str]] = None,
    ) -> List[RetrievedData]:
        """Best-effort retrieval from every integration of an org.

        Failing integrations are skipped. Results come back in no particular order.
        """
        options = options or RetrievalOptions()
        try:
            integrations = await self.registry.list_for_org(org_id)
        except Exception as e:
            logger.error(f"Failed to list integrations for organization {org_id}: {e}")
            if not self.demo_mode:
                raise
            logger.warning("Integration listing failed, falling back to synthetic data")
            return self.generate_synthetic_set(options)

        if not integrations:
            if self.demo_mode:
                logger.warning(f"No integrations found for org {org_id}, generating synthetic data")
                return self.generate_synthetic_set(options)
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        jobs = []
        for integration in integrations:
            types = self._data_types_for(integration.source, data_types)
            if not types:
                logger.info(f"Skipping {integration.source.value}:{integration.id}, none of {data_types} supported")
            for data_type in types:
                jobs.append(self._retrieve_quietly(integration, data_type, options, semaphore))

        results = await asyncio.gather(*jobs)
        return [result for result in results if result is not None]

    # --- synthetic data ---

    def generate_synthetic_data(self, source: str, options: RetrievalOptions) -> RetrievedData:
        data_type = self.get_default_data_type(source)
        records = synthetic_records(source, data_type, options.limit, default_count=10, cap=20)
        return RetrievedData(
            source=source,
            data_type=data_type,
            records=records,
            metadata=RetrievalMetadata(
                total_count=len(records),
                retrieved_at=datetime.now(timezone.utc),
                integration_id=f"mock_{source}_integration",
                credentials=dict(MOCK_CREDENTIALS),
                synthetic=True,
            ),
        )

    def generate_synthetic_set(self, options: RetrievalOptions) -> List[RetrievedData]:
        return [self.generate_synthetic_data(source, options) for source in settings.SYNTHETIC_SOURCES]

    # --- snapshots ---

    async def save_retrieved_data(
        self, org_id: str, retrieved: RetrievedData, user_id: Optional[str] = None
    ) -> DataImport:
        data_import = DataImport(
            id=str(uuid.uuid4()),
            org_id=org_id,
            file_type="json",
            data=retrieved.records,
            metadata=DataImportMetadata(
                source=retrieved.source,
                data_type=retrieved.data_type,
                retrieved_at=retrieved.metadata.retrieved_at,
                total_count=retrieved.metadata.total_count,
                integration_id=retrieved.metadata.integration_id,
            ),
            created_by=user_id,
            created_at=datetime.now(timezone.utc),
        )
        return await self.registry.save_data_import(data_import)


data_retrieval_service = DataRetrievalService()
