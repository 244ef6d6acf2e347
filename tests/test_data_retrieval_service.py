import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest
from unittest.mock import AsyncMock

from core.exceptions import (
    DecryptionError,
    IntegrationNotFoundError,
    MissingCredentialsError,
    SourceAPIError,
    UnsupportedDataTypeError,
)
from views.acuity_adapter import AcuityAdapter, AcuityClient
from views.data_retrieval_service import DataRetrievalService
from views.enums import GoogleAuthMethod, IntegrationSource
from views.google_adapter import GoogleAdapter
from views.integration_registry import IntegrationRegistry
from views.plaid_adapter import PlaidAdapter
from views.schemas.integration import Integration
from views.schemas.retrieval import RetrievalOptions
from views.source_adapter import AdapterRegistry, SourceAdapter


class StaticAdapter(SourceAdapter):
    """Returns canned records for any supported type."""

    def __init__(self, source: IntegrationSource, data_types=("transactions",), records=None):
        self.source = source
        self.supported_data_types = tuple(data_types)
        self.default_data_type = data_types[0]
        self.records = records if records is not None else [{"id": f"{source.value}-1"}]
        self.calls: List[str] = []

    async def fetch(self, credentials, data_type, options) -> List[Dict[str, Any]]:
        self.ensure_supported(data_type)
        self.calls.append(data_type)
        return list(self.records)


class ExplodingAdapter(StaticAdapter):
    async def fetch(self, credentials, data_type, options):
        raise RuntimeError("vendor SDK exploded")


class SlowAdapter(StaticAdapter):
    def __init__(self, source, delay: float):
        super().__init__(source)
        self.delay = delay
        self.in_flight = 0
        self.peak = 0

    async def fetch(self, credentials, data_type, options):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return list(self.records)


def make_service(registry, adapters, demo_mode=False, **kwargs) -> DataRetrievalService:
    return DataRetrievalService(registry, AdapterRegistry(adapters), demo_mode=demo_mode, **kwargs)


@pytest.fixture
def acuity_adapter(acuity_transport) -> AcuityAdapter:
    return AcuityAdapter(AcuityClient(base_url="https://acuity.test/api/v1", transport=acuity_transport))


@pytest.fixture
def failing_acuity_adapter() -> AcuityAdapter:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"message": "down"}))
    return AcuityAdapter(AcuityClient(base_url="https://acuity.test/api/v1", transport=transport))


async def add_google(registry, org_id="org-1", name="Sheets"):
    return await registry.create_google(
        org_id, GoogleAuthMethod.OAUTH, name, f"{name.lower()}@example.com", [], access_token="ya29.token"
    )


class TestRetrieveFromIntegration:
    @pytest.mark.asyncio
    async def test_acuity_appointments_scenario(self, registry, acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        service = make_service(registry, [acuity_adapter])

        result = await service.retrieve_from_integration(integration.id, "appointments", RetrievalOptions(limit=5))

        assert result.source == "acuity"
        assert result.data_type == "appointments"
        assert 0 < len(result.records) <= 5
        for record in result.records:
            assert record["id"] and record["datetime"] and record["client"]["email"]
        assert result.metadata.total_count == len(result.records)
        assert result.metadata.integration_id == integration.id
        assert result.metadata.credentials == {"api_key": "***", "user_id": "12345"}
        assert result.metadata.synthetic is False

    @pytest.mark.asyncio
    async def test_google_sheets_stub_returns_nothing(self, registry):
        integration = await add_google(registry)
        service = make_service(registry, [GoogleAdapter()])

        result = await service.retrieve_from_integration(integration.id, "sheets")

        assert result.records == []
        assert result.metadata.total_count == 0

    @pytest.mark.asyncio
    async def test_default_data_type(self, registry, acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        service = make_service(registry, [acuity_adapter])

        result = await service.retrieve_from_integration(integration.id)
        assert result.data_type == "appointments"

    @pytest.mark.asyncio
    async def test_source_without_adapter(self):
        integrations = {}
        registry = IntegrationRegistry(integrations=integrations, members={}, data_imports={})
        integrations["qb-1"] = Integration(
            id="qb-1",
            org_id="org-1",
            source=IntegrationSource.QUICKBOOKS,
            created_at=datetime.now(timezone.utc),
        )
        service = make_service(registry, [GoogleAdapter()])

        with pytest.raises(UnsupportedDataTypeError) as excinfo:
            await service.retrieve_from_integration("qb-1", "invoices")
        assert "invoices" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_unknown_integration(self, registry):
        service = make_service(registry, [GoogleAdapter()])
        with pytest.raises(IntegrationNotFoundError):
            await service.retrieve_from_integration("missing", "sheets")

    @pytest.mark.asyncio
    async def test_unsupported_data_type(self, registry, acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        service = make_service(registry, [acuity_adapter])

        with pytest.raises(UnsupportedDataTypeError):
            await service.retrieve_from_integration(integration.id, "transactions")

    @pytest.mark.asyncio
    async def test_missing_credentials(self, registry):
        integration = await registry.create_google("org-1", GoogleAuthMethod.OAUTH, "NoToken", "x@example.com", [])
        service = make_service(registry, [GoogleAdapter()])

        with pytest.raises(MissingCredentialsError):
            await service.retrieve_from_integration(integration.id, "sheets")

    @pytest.mark.asyncio
    async def test_decryption_failure_is_fatal(self):
        integrations = {}
        registry = IntegrationRegistry(integrations=integrations, members={}, data_imports={})
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        integrations[integration.id] = integration.model_copy(update={"secrets": {"api_key": "garbage!"}})
        service = make_service(registry, [StaticAdapter(IntegrationSource.ACUITY, ("appointments",))], demo_mode=True)

        with pytest.raises(DecryptionError):
            await service.retrieve_from_integration(integration.id, "appointments")

    @pytest.mark.asyncio
    async def test_vendor_failure_propagates_outside_demo_mode(self, registry, failing_acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        service = make_service(registry, [failing_acuity_adapter])

        with pytest.raises(SourceAPIError):
            await service.retrieve_from_integration(integration.id, "appointments")

    @pytest.mark.asyncio
    async def test_vendor_failure_uses_synthetic_data_in_demo_mode(self, registry, failing_acuity_adapter, caplog):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        synced_before = integration.last_synced_at
        service = make_service(registry, [failing_acuity_adapter], demo_mode=True)

        result = await service.retrieve_from_integration(integration.id, "appointments", RetrievalOptions(limit=3))

        assert result.metadata.synthetic is True
        assert len(result.records) == 3
        assert all(r["client"]["email"] for r in result.records)
        assert "synthetic" in caplog.text
        assert (await registry.find_by_id(integration.id)).last_synced_at == synced_before

    @pytest.mark.asyncio
    async def test_non_json_reply_uses_synthetic_data_in_demo_mode(self, registry):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        adapter = AcuityAdapter(AcuityClient(base_url="https://acuity.test/api/v1", transport=transport))
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")

        demo = make_service(registry, [adapter], demo_mode=True)
        result = await demo.retrieve_from_integration(integration.id, "appointments", RetrievalOptions(limit=2))
        assert result.metadata.synthetic is True
        assert len(result.records) == 2

        with pytest.raises(SourceAPIError):
            await make_service(registry, [adapter]).retrieve_from_integration(integration.id, "appointments")

    @pytest.mark.asyncio
    async def test_timeout_becomes_source_api_error(self, registry):
        integration = await add_google(registry)
        service = make_service(registry, [SlowAdapter(IntegrationSource.GOOGLE, delay=1.0)], timeout=0.01)

        with pytest.raises(SourceAPIError):
            await service.retrieve_from_integration(integration.id, "transactions")

    @pytest.mark.asyncio
    async def test_success_updates_last_synced(self, registry, acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        service = make_service(registry, [acuity_adapter])

        await service.retrieve_from_integration(integration.id, "calendars")
        assert (await registry.find_by_id(integration.id)).last_synced_at > integration.last_synced_at

    @pytest.mark.asyncio
    async def test_last_synced_failure_does_not_fail_retrieval(self, registry, acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        registry.update_last_synced = AsyncMock(side_effect=RuntimeError("write failed"))
        service = make_service(registry, [acuity_adapter])

        result = await service.retrieve_from_integration(integration.id, "calendars")
        assert result.records


class TestRetrieveFromAllIntegrations:
    @pytest.mark.asyncio
    async def test_no_integrations_in_demo_mode_yields_synthetic_set(self, registry):
        service = make_service(registry, [GoogleAdapter()], demo_mode=True)

        results = await service.retrieve_from_all_integrations("org-empty", RetrievalOptions(limit=4))

        assert sorted(r.source for r in results) == ["acuity", "google", "plaid"]
        for result in results:
            assert len(result.records) <= 4
            assert result.metadata.synthetic is True
            assert result.metadata.integration_id == f"mock_{result.source}_integration"

    @pytest.mark.asyncio
    async def test_no_integrations_outside_demo_mode_yields_nothing(self, registry):
        service = make_service(registry, [GoogleAdapter()])
        assert await service.retrieve_from_all_integrations("org-empty") == []

    @pytest.mark.asyncio
    async def test_listing_failure_in_demo_mode(self, registry):
        registry.list_for_org = AsyncMock(side_effect=ConnectionError("database unavailable"))
        service = make_service(registry, [GoogleAdapter()], demo_mode=True)

        results = await service.retrieve_from_all_integrations("org-1", RetrievalOptions(limit=2))
        assert {r.source for r in results} == {"google", "acuity", "plaid"}

    @pytest.mark.asyncio
    async def test_listing_failure_outside_demo_mode_propagates(self, registry):
        registry.list_for_org = AsyncMock(side_effect=ConnectionError("database unavailable"))
        service = make_service(registry, [GoogleAdapter()])

        with pytest.raises(ConnectionError):
            await service.retrieve_from_all_integrations("org-1")

    @pytest.mark.asyncio
    async def test_failing_integration_is_skipped(self, registry, caplog):
        await registry.create_acuity("org-1", "12345", "acuity-key")
        await add_google(registry)
        await registry.create_plaid("org-1", "access-sandbox", "item-1")
        service = make_service(
            registry,
            [
                ExplodingAdapter(IntegrationSource.ACUITY, ("appointments",)),
                StaticAdapter(IntegrationSource.GOOGLE, ("sheets",)),
                StaticAdapter(IntegrationSource.PLAID, ("transactions",)),
            ],
        )

        results = await service.retrieve_from_all_integrations("org-1")

        assert {r.source for r in results} == {"google", "plaid"}
        assert "Failed to retrieve from acuity" in caplog.text

    @pytest.mark.asyncio
    async def test_unadapted_source_is_skipped(self, registry):
        integrations = {}
        registry = IntegrationRegistry(integrations=integrations, members={}, data_imports={})
        integrations["qb-1"] = Integration(
            id="qb-1", org_id="org-1", source=IntegrationSource.QUICKBOOKS, created_at=datetime.now(timezone.utc)
        )
        await add_google(registry)
        service = make_service(registry, [StaticAdapter(IntegrationSource.GOOGLE, ("sheets",))])

        results = await service.retrieve_from_all_integrations("org-1")
        assert [r.source for r in results] == ["google"]

    @pytest.mark.asyncio
    async def test_requested_data_types_are_matched_per_source(self, registry):
        await registry.create_acuity("org-1", "12345", "acuity-key")
        await registry.create_plaid("org-1", "access-sandbox", "item-1")
        acuity = StaticAdapter(IntegrationSource.ACUITY, ("appointments", "clients"))
        plaid = StaticAdapter(IntegrationSource.PLAID, ("transactions", "accounts"))
        service = make_service(registry, [acuity, plaid])

        results = await service.retrieve_from_all_integrations("org-1", data_types=["clients", "accounts"])

        assert {(r.source, r.data_type) for r in results} == {("acuity", "clients"), ("plaid", "accounts")}
        assert acuity.calls == ["clients"]
        assert plaid.calls == ["accounts"]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, registry):
        for i in range(6):
            await add_google(registry, name=f"Account{i}")
        adapter = SlowAdapter(IntegrationSource.GOOGLE, delay=0.02)
        service = make_service(registry, [adapter], max_concurrency=2)

        results = await service.retrieve_from_all_integrations("org-1")

        assert len(results) == 6
        assert adapter.peak == 2

    @pytest.mark.asyncio
    async def test_other_orgs_are_not_touched(self, registry):
        await add_google(registry, org_id="org-2")
        service = make_service(registry, [StaticAdapter(IntegrationSource.GOOGLE, ("sheets",))])

        assert await service.retrieve_from_all_integrations("org-1") == []


class TestCapabilitiesAndSnapshots:
    def test_capabilities(self, registry, acuity_adapter):
        service = make_service(registry, [acuity_adapter, GoogleAdapter(), PlaidAdapter()])

        assert service.get_available_data_types("acuity") == ["appointments", "clients", "appointment_types", "calendars"]
        assert service.get_available_data_types("google") == ["sheets", "calendar", "drive"]
        assert service.get_default_data_type("plaid") == "transactions"
        assert service.get_default_data_type("quickbooks") == "transactions"
        assert service.get_available_data_types("unknown") == []
        assert service.get_default_data_type("unknown") == "data"

    @pytest.mark.asyncio
    async def test_save_retrieved_data(self, registry, acuity_adapter):
        integration = await registry.create_acuity("org-1", "12345", "acuity-key")
        service = make_service(registry, [acuity_adapter])
        retrieved = await service.retrieve_from_integration(integration.id, "appointments", RetrievalOptions(limit=2))

        snapshot = await service.save_retrieved_data("org-1", retrieved, user_id="user-1")

        assert snapshot.file_type == "json"
        assert snapshot.data == retrieved.records
        assert snapshot.metadata.source == "acuity"
        assert snapshot.metadata.data_type == "appointments"
        assert snapshot.metadata.total_count == len(retrieved.records)
        assert snapshot.metadata.integration_id == integration.id
        assert snapshot.created_by == "user-1"
        assert await registry.list_data_imports("org-1") == [snapshot]
