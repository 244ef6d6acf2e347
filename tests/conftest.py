"""
Shared fixtures for the test suite.

Settings are read at import time, so the environment is pinned here before
any application module is imported.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-3f9a1c0d7e2b4a68"
os.environ.pop("DEMO_MODE", None)

from typing import Any, Callable, Dict, List  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from views import integration_registry as registry_module  # noqa: E402
from views.integration_registry import IntegrationRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def clean_stores():
    """Module-level stores are shared by the API singletons; reset them per test."""
    registry_module.integrations_db.clear()
    registry_module.org_members_db.clear()
    registry_module.data_imports_db.clear()
    yield
    registry_module.integrations_db.clear()
    registry_module.org_members_db.clear()
    registry_module.data_imports_db.clear()


@pytest.fixture
def registry() -> IntegrationRegistry:
    """Registry backed by private stores."""
    return IntegrationRegistry(integrations={}, members={}, data_imports={})


def sample_appointments(count: int) -> List[Dict[str, Any]]:
    return [
        {
            "id": 1000 + i,
            "datetime": f"2024-03-{i + 1:02d}T09:00:00-0500",
            "appointmentTypeID": 7,
            "firstName": "Ada",
            "lastName": f"Client{i}",
            "email": f"ada{i}@example.com",
            "phone": "555-0100",
            "price": "100.00",
        }
        for i in range(count)
    ]


@pytest.fixture
def acuity_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Stands in for the Acuity API, recording every request it sees."""
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        path = request.url.path
        if path.endswith("/me"):
            return httpx.Response(200, json={"id": 42, "email": "owner@example.com"})
        if path.endswith("/appointments"):
            max_results = int(request.url.params.get("max", 8))
            return httpx.Response(200, json=sample_appointments(min(max_results, 8)))
        if path.endswith("/clients"):
            return httpx.Response(
                200, json=[{"firstName": "C", "lastName": str(i), "email": f"c{i}@example.com"} for i in range(6)]
            )
        if path.endswith("/appointment-types"):
            return httpx.Response(200, json=[{"id": 1, "name": "Consultation", "duration": 60}])
        if path.endswith("/calendars"):
            return httpx.Response(200, json=[{"id": 1, "name": "Main", "timezone": "America/New_York"}])
        return httpx.Response(404, json={"message": "not found"})

    handler.seen = seen  # type: ignore[attr-defined]
    return handler


@pytest.fixture
def acuity_transport(acuity_handler) -> httpx.MockTransport:
    return httpx.MockTransport(acuity_handler)
