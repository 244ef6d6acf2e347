"""
Synthetic records shaped like each source's real data.

Generators are seeded from (source, data_type) so the same request always
yields the same records; only timestamps move with `now`.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

DAY = timedelta(days=1)

PLAID_MERCHANTS = ["Coffee Shop", "Grocery Store", "Gas Station", "Restaurant", "Online Purchase"]
PLAID_CATEGORIES = ["Food", "Transportation", "Shopping", "Entertainment"]
APPOINTMENT_STATUSES = ["scheduled", "completed", "cancelled"]


def _acuity_appointment(i: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "id": f"mock_appointment_{i + 1}",
        "datetime": (now - rng.randint(0, 29) * DAY).isoformat(),
        "appointmentTypeID": 123,
        "client": {
            "id": f"client_{i + 1}",
            "firstName": "Client",
            "lastName": f"{i + 1}",
            "email": f"client{i + 1}@example.com",
        },
        "calendar": "Main Calendar",
        "duration": 60,
        "price": "$100.00",
        "status": rng.choice(APPOINTMENT_STATUSES),
        "notes": "Mock appointment data",
    }


def _acuity_client(i: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "id": f"mock_client_{i + 1}",
        "firstName": "Client",
        "lastName": f"{i + 1}",
        "email": f"client{i + 1}@example.com",
        "phone": f"555-000-{1000 + i}",
        "notes": "Mock client data",
    }


def _google_row(i: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "id": f"google_{i + 1}",
        "date": (now - rng.randint(0, 29) * DAY).isoformat(),
        "type": "spreadsheet_data",
        "title": f"Financial Report {i + 1}",
        "value": rng.randint(0, 10000),
        "currency": "USD",
        "source": "Google Sheets",
    }


def _plaid_transaction(i: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "id": f"plaid_{i + 1}",
        "date": (now - rng.randint(0, 29) * DAY).date().isoformat(),
        "type": "transaction",
        "description": rng.choice(PLAID_MERCHANTS),
        "amount": round(rng.uniform(10, 210), 2),
        "category": rng.choice(PLAID_CATEGORIES),
        "account": "Bank of America Checking",
        "source": "Plaid",
    }


def _plaid_account(i: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "id": f"plaid_account_{i + 1}",
        "name": f"Checking {i + 1}",
        "type": "depository",
        "subtype": "checking",
        "balance": round(rng.uniform(100, 25000), 2),
        "currency": "USD",
    }


def _generic(source: str) -> Callable[[int, random.Random, datetime], Dict[str, Any]]:
    def build(i: int, rng: random.Random, now: datetime) -> Dict[str, Any]:
        return {"id": f"{source}_{i + 1}", "date": now.isoformat(), "value": rng.randint(0, 1000)}

    return build


GENERATORS: Dict[str, Dict[str, Callable[[int, random.Random, datetime], Dict[str, Any]]]] = {
    "acuity": {
        "appointments": _acuity_appointment,
        "clients": _acuity_client,
    },
    "google": {
        "sheets": _google_row,
        "spreadsheet_data": _google_row,
    },
    "plaid": {
        "transactions": _plaid_transaction,
        "accounts": _plaid_account,
        "balances": _plaid_account,
    },
}

# Small reference tables returned whole, regardless of limit defaults
FIXED_TABLES: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
    "acuity": {
        "appointment_types": [
            {"id": 1, "name": "Consultation", "duration": 60, "price": "$100.00"},
            {"id": 2, "name": "Follow-up", "duration": 30, "price": "$50.00"},
            {"id": 3, "name": "Group Session", "duration": 90, "price": "$150.00"},
        ],
        "calendars": [
            {"id": 1, "name": "Main Calendar", "timezone": "America/New_York"},
            {"id": 2, "name": "Secondary Calendar", "timezone": "America/New_York"},
        ],
    },
}


def synthetic_records(
    source: str,
    data_type: str,
    limit: Optional[int] = None,
    default_count: int = 5,
    cap: int = 10,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Build at most min(limit or default_count, cap) records for source/data_type"""
    count = min(limit or default_count, cap)

    fixed = FIXED_TABLES.get(source, {}).get(data_type)
    if fixed is not None:
        return [dict(row) for row in fixed[:count]]

    now = now or datetime.now(timezone.utc)
    rng = random.Random(f"{source}:{data_type}")
    build = GENERATORS.get(source, {}).get(data_type) or _generic(source)
    return [build(i, rng, now) for i in range(count)]
