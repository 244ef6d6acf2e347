import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.exceptions import SourceAPIError
from views.enums import IntegrationSource
from views.schemas.retrieval import RetrievalOptions
from views.source_adapter import SourceAdapter, paginate

logger = logging.getLogger(__name__)


class AcuityClient:
    """Acuity Scheduling REST API (API key auth)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ACUITY_API_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @staticmethod
    def _headers(user_id: str, api_key: str) -> Dict[str, str]:
        # Acuity uses Basic Auth with userId:apiKey
        auth_b64 = base64.b64encode(f"{user_id}:{api_key}".encode()).decode("ascii")
        return {"Authorization": f"Basic {auth_b64}", "Accept": "application/json"}

    async def _get(self, user_id: str, api_key: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with httpx.AsyncClient(transport=self.transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}{path}",
                    headers=self._headers(user_id, api_key),
                    params=params,
                    timeout=self.timeout,
                )
            except httpx.TimeoutException:
                raise SourceAPIError("acuity", f"timeout calling {path}")
            except httpx.RequestError as e:
                raise SourceAPIError("acuity", f"connection error: {str(e)}")

        if response.status_code == 401:
            raise SourceAPIError("acuity", "invalid Acuity credentials", 401)
        elif response.status_code != 200:
            raise SourceAPIError("acuity", f"{path} returned {response.status_code}", response.status_code)

        try:
            return response.json()
        except ValueError:
            raise SourceAPIError("acuity", f"invalid JSON response from {path}")

    async def get_user_info(self, user_id: str, api_key: str) -> Dict[str, Any]:
        return await self._get(user_id, api_key, "/me")

    async def test_connection(self, user_id: str, api_key: str) -> bool:
        try:
            await self.get_user_info(user_id, api_key)
            return True
        except SourceAPIError as e:
            logger.error(f"Acuity connection test failed: {e}")
            return False

    async def get_appointments(
        self,
        user_id: str,
        api_key: str,
        min_date: Optional[str] = None,
        max_date: Optional[str] = None,
        max_results: Optional[int] = None,
        appointment_type_id: Optional[int] = None,
        calendar_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {
            "minDate": min_date,
            "maxDate": max_date,
            "max": max_results,
            "appointmentTypeID": appointment_type_id,
            "calendarID": calendar_id,
        }
        # Remove None values
        params = {k: v for k, v in params.items() if v is not None}
        return await self._get(user_id, api_key, "/appointments", params)

    async def get_clients(self, user_id: str, api_key: str) -> List[Dict[str, Any]]:
        return await self._get(user_id, api_key, "/clients")

    async def get_appointment_types(self, user_id: str, api_key: str) -> List[Dict[str, Any]]:
        return await self._get(user_id, api_key, "/appointment-types")

    async def get_calendars(self, user_id: str, api_key: str) -> List[Dict[str, Any]]:
        return await self._get(user_id, api_key, "/calendars")


def normalize_appointment(appointment: Dict[str, Any]) -> Dict[str, Any]:
    """Acuity sends the booking client as flat fields; nest them under `client`"""
    normalized = dict(appointment)
    normalized["client"] = {
        # Acuity identifies clients by email
        "id": appointment.get("email"),
        "firstName": appointment.get("firstName"),
        "lastName": appointment.get("lastName"),
        "email": appointment.get("email"),
        "phone": appointment.get("phone"),
    }
    return normalized


class AcuityAdapter(SourceAdapter):
    source = IntegrationSource.ACUITY
    supported_data_types = ("appointments", "clients", "appointment_types", "calendars")
    default_data_type = "appointments"
    required_credentials = ("api_key", "user_id")
    public_credentials = ("user_id",)

    def __init__(self, client: Optional[AcuityClient] = None):
        self.client = client or AcuityClient()

    async def fetch(
        self, credentials: Dict[str, Any], data_type: str, options: RetrievalOptions
    ) -> List[Dict[str, Any]]:
        self.ensure_supported(data_type)
        self.check_credentials(credentials)
        user_id = credentials["user_id"]
        api_key = credentials["api_key"]

        if data_type == "appointments":
            # Acuity takes YYYY-MM-DD bounds and a `max` result count
            offset = options.offset or 0
            max_results = options.limit + offset if options.limit else None
            records = await self.client.get_appointments(
                user_id,
                api_key,
                min_date=options.start_date.date().isoformat() if options.start_date else None,
                max_date=options.end_date.date().isoformat() if options.end_date else None,
                max_results=max_results,
                appointment_type_id=options.filters.get("appointmentTypeID"),
                calendar_id=options.filters.get("calendarID"),
            )
            records = [normalize_appointment(a) for a in records or []]
        elif data_type == "clients":
            records = await self.client.get_clients(user_id, api_key)
        elif data_type == "appointment_types":
            records = await self.client.get_appointment_types(user_id, api_key)
        else:
            records = await self.client.get_calendars(user_id, api_key)

        return paginate(records or [], options)
