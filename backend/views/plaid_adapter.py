import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.config import settings
from core.exceptions import MissingCredentialsError, SourceAPIError
from views.enums import IntegrationSource
from views.schemas.retrieval import RetrievalOptions
from views.source_adapter import SourceAdapter, paginate

logger = logging.getLogger(__name__)

PLAID_ENVIRONMENTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

DEFAULT_TRANSACTION_WINDOW = timedelta(days=30)


class PlaidClient:
    """Plaid REST API, authenticated with the platform client id and secret"""

    def __init__(
        self,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        environment: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id or settings.PLAID_CLIENT_ID
        self.secret = secret or settings.PLAID_SECRET
        environment = environment or settings.PLAID_ENVIRONMENT
        if environment not in PLAID_ENVIRONMENTS:
            raise ValueError(f"Unknown Plaid environment: {environment}")
        self.base_url = PLAID_ENVIRONMENTS[environment]
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.client_id or not self.secret:
            raise MissingCredentialsError("plaid", ["PLAID_CLIENT_ID", "PLAID_SECRET"])

        body = {"client_id": self.client_id, "secret": self.secret, **payload}
        async with httpx.AsyncClient(transport=self.transport) as client:
            try:
                response = await client.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
            except httpx.TimeoutException:
                raise SourceAPIError("plaid", f"timeout calling {path}")
            except httpx.RequestError as e:
                raise SourceAPIError("plaid", f"connection error: {str(e)}")

        if response.status_code != 200:
            try:
                error_code = response.json().get("error_code", "UNKNOWN")
            except ValueError:
                error_code = "UNKNOWN"
            raise SourceAPIError("plaid", f"{path} failed with {error_code}", response.status_code)

        try:
            return response.json()
        except ValueError:
            raise SourceAPIError("plaid", f"invalid JSON response from {path}")

    async def create_link_token(self, org_id: str, user_id: str) -> Dict[str, Any]:
        """Link token for the Plaid Link widget"""
        data = await self._post(
            "/link/token/create",
            {
                "user": {"client_user_id": f"{org_id}_{user_id}"},
                "client_name": settings.app_name,
                "products": ["transactions"],
                "country_codes": ["US"],
                "language": "en",
            },
        )
        return {"linkToken": data.get("link_token"), "expiration": data.get("expiration")}

    async def exchange_public_token(self, public_token: str) -> Tuple[str, str]:
        """Swap a Link public token for a long-lived (access_token, item_id) pair"""
        data = await self._post("/item/public_token/exchange", {"public_token": public_token})
        access_token = data.get("access_token")
        item_id = data.get("item_id")
        if not access_token or not item_id:
            raise SourceAPIError("plaid", "token exchange returned no access token")
        return access_token, item_id

    async def get_accounts(self, access_token: str) -> List[Dict[str, Any]]:
        data = await self._post("/accounts/get", {"access_token": access_token})
        return data.get("accounts", [])

    async def get_balances(self, access_token: str) -> List[Dict[str, Any]]:
        data = await self._post("/accounts/balance/get", {"access_token": access_token})
        return data.get("accounts", [])

    async def get_transactions(
        self, access_token: str, start_date: str, end_date: str, count: int = 100, offset: int = 0
    ) -> List[Dict[str, Any]]:
        data = await self._post(
            "/transactions/get",
            {
                "access_token": access_token,
                "start_date": start_date,
                "end_date": end_date,
                "options": {"count": count, "offset": offset},
            },
        )
        return data.get("transactions", [])


def normalize_account(account: Dict[str, Any]) -> Dict[str, Any]:
    balances = account.get("balances") or {}
    return {
        "id": account.get("account_id"),
        "name": account.get("name"),
        "type": account.get("type"),
        "subtype": account.get("subtype"),
        "balance": balances.get("current"),
        "available": balances.get("available"),
        "currency": balances.get("iso_currency_code"),
    }


def normalize_transaction(transaction: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": transaction.get("transaction_id"),
        "accountId": transaction.get("account_id"),
        "amount": transaction.get("amount"),
        "date": transaction.get("date"),
        "name": transaction.get("name"),
        "merchantName": transaction.get("merchant_name"),
        "category": transaction.get("category"),
        "pending": transaction.get("pending", False),
    }


class PlaidAdapter(SourceAdapter):
    source = IntegrationSource.PLAID
    supported_data_types = ("transactions", "accounts", "balances")
    default_data_type = "transactions"
    required_credentials = ("access_token",)
    public_credentials = ("item_id",)

    def __init__(self, client: Optional[PlaidClient] = None):
        self._client = client

    @property
    def client(self) -> PlaidClient:
        # Built lazily so a missing Plaid environment only matters when Plaid is used
        if self._client is None:
            self._client = PlaidClient()
        return self._client

    async def fetch(
        self, credentials: Dict[str, Any], data_type: str, options: RetrievalOptions
    ) -> List[Dict[str, Any]]:
        self.ensure_supported(data_type)
        self.check_credentials(credentials)
        access_token = credentials["access_token"]

        if data_type == "accounts":
            return paginate([normalize_account(a) for a in await self.client.get_accounts(access_token)], options)
        if data_type == "balances":
            return paginate([normalize_account(a) for a in await self.client.get_balances(access_token)], options)

        end = options.end_date or datetime.now(timezone.utc)
        start = options.start_date or end - DEFAULT_TRANSACTION_WINDOW
        transactions = await self.client.get_transactions(
            access_token,
            start.date().isoformat(),
            end.date().isoformat(),
            count=min(options.limit or 100, 500),
            offset=options.offset or 0,
        )
        return [normalize_transaction(t) for t in transactions]
