from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from views.enums import GoogleAuthMethod, IntegrationSource, IntegrationStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Integration(CamelModel):
    """Stored integration record. Values in `secrets` are encrypted blobs."""

    id: str
    org_id: str
    source: IntegrationSource
    display_name: Optional[str] = None
    secrets: Dict[str, str] = {}
    external_account_id: Optional[str] = None
    auth_method: Optional[GoogleAuthMethod] = None
    email: Optional[str] = None
    scopes: List[str] = []
    expiry_date: Optional[datetime] = None
    created_by: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    last_synced_at: Optional[datetime] = None


class DecryptedIntegration(BaseModel):
    """Integration with plaintext credentials. Held in memory only."""

    integration: Integration
    credentials: Dict[str, Any]

    @property
    def id(self) -> str:
        return self.integration.id

    @property
    def source(self) -> IntegrationSource:
        return self.integration.source


class IntegrationSummary(CamelModel):
    id: str
    name: str
    type: IntegrationSource
    source: IntegrationSource
    status: IntegrationStatus = IntegrationStatus.CONNECTED
    last_sync: Optional[datetime] = None
    record_count: Optional[int] = None
    description: str = ""
    external_account_id: Optional[str] = None


class AcuityConnectRequest(CamelModel):
    org_id: str
    acuity_user_id: str
    api_key: str
    name: Optional[str] = None

    @field_validator("acuity_user_id", "api_key")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class GoogleServiceAccountRequest(CamelModel):
    org_id: str
    name: str
    credentials: Dict[str, Any]
    scopes: List[str] = Field(default_factory=lambda: ["https://www.googleapis.com/auth/spreadsheets.readonly"])

    @field_validator("credentials")
    @classmethod
    def validate_service_account(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        missing = [key for key in ("client_email", "private_key") if not v.get(key)]
        if missing:
            raise ValueError(f"Service account JSON is missing: {', '.join(missing)}")
        if v.get("type", "service_account") != "service_account":
            raise ValueError("Credentials must be a service account key")
        return v


class PlaidLinkTokenRequest(CamelModel):
    org_id: str


class PlaidExchangeRequest(CamelModel):
    org_id: str
    public_token: str
    name: Optional[str] = None

    @field_validator("public_token")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()
