import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from apis.v1.errors import get_user_id, to_http_exception
from core.exceptions import IntegrationError
from core.security import is_encryption_configured
from views.acuity_adapter import AcuityClient
from views.enums import GoogleAuthMethod, IntegrationSource, IntegrationStatus
from views.integration_registry import integration_registry
from views.schemas.integration import AcuityConnectRequest, GoogleServiceAccountRequest, IntegrationSummary

router = APIRouter(prefix="/integrations", tags=["integrations"])

logger = logging.getLogger(__name__)

acuity_client = AcuityClient()

DESCRIPTIONS = {
    IntegrationSource.ACUITY: "Appointment and booking data",
    IntegrationSource.GOOGLE: "Google Sheets and Drive",
    IntegrationSource.PLAID: "Bank accounts and transactions",
    IntegrationSource.QUICKBOOKS: "Accounting data",
}


@router.get("/list")
async def list_integrations(request: Request, orgId: str = Query(...), includeInactive: bool = False):
    """List the integrations of an organization the caller belongs to"""
    user_id = get_user_id(request)
    try:
        await integration_registry.require_member(user_id, orgId)
    except IntegrationError as e:
        raise to_http_exception(e)

    integrations = await integration_registry.list_for_org(orgId, include_inactive=includeInactive)
    logger.info(f"Found {len(integrations)} integrations for org {orgId}")

    summaries = [
        IntegrationSummary(
            id=integration.id,
            name=integration.display_name or integration.email or f"{integration.source.value.title()} Integration",
            type=integration.source,
            source=integration.source,
            status=IntegrationStatus.CONNECTED if integration.is_active else IntegrationStatus.INACTIVE,
            last_sync=integration.last_synced_at,
            description=DESCRIPTIONS.get(integration.source, ""),
            external_account_id=integration.external_account_id,
        ).model_dump(mode="json", by_alias=True)
        for integration in integrations
    ]
    return {"success": True, "integrations": summaries, "total": len(summaries)}


@router.post("/acuity/connect")
async def connect_acuity(connection: AcuityConnectRequest, request: Request):
    """Validate Acuity credentials and store them encrypted"""
    user_id = get_user_id(request)
    try:
        await integration_registry.require_admin(user_id, connection.org_id)
    except IntegrationError as e:
        raise to_http_exception(e)

    if not await acuity_client.test_connection(connection.acuity_user_id, connection.api_key):
        raise HTTPException(status_code=401, detail="Invalid Acuity credentials")

    if not is_encryption_configured():
        logger.warning("Storing Acuity credentials with the development encryption key")

    integration = await integration_registry.create_acuity(
        connection.org_id,
        connection.acuity_user_id,
        connection.api_key,
        name=connection.name,
        created_by=user_id,
    )
    return {
        "message": "Acuity connected successfully",
        "integrationId": integration.id,
        "source": integration.source.value,
    }


@router.delete("/acuity/disconnect")
async def disconnect_acuity(request: Request, orgId: str = Query(...)):
    user_id = get_user_id(request)
    try:
        await integration_registry.require_admin(user_id, orgId)
    except IntegrationError as e:
        raise to_http_exception(e)

    removed = await integration_registry.delete(orgId, IntegrationSource.ACUITY)
    if not removed:
        raise HTTPException(status_code=404, detail="Integration not found")
    return {"message": "Acuity disconnected successfully"}


@router.post("/google/service-account")
async def connect_google_service_account(connection: GoogleServiceAccountRequest, request: Request):
    user_id = get_user_id(request)
    try:
        await integration_registry.require_admin(user_id, connection.org_id)
    except IntegrationError as e:
        raise to_http_exception(e)

    integration = await integration_registry.create_google(
        connection.org_id,
        GoogleAuthMethod.SERVICE_ACCOUNT,
        name=connection.name,
        email=connection.credentials.get("client_email"),
        scopes=connection.scopes,
        credentials=connection.credentials,
        user_id=user_id,
    )
    return {
        "message": "Google service account connected successfully",
        "integrationId": integration.id,
        "email": integration.email,
    }


@router.delete("/google/{integration_id}")
async def disconnect_google(integration_id: str, request: Request):
    user_id = get_user_id(request)
    integration = await integration_registry.find_by_id(integration_id)
    if not integration or integration.source != IntegrationSource.GOOGLE:
        raise HTTPException(status_code=404, detail="Integration not found")

    try:
        await integration_registry.require_admin(user_id, integration.org_id)
    except IntegrationError as e:
        raise to_http_exception(e)

    await integration_registry.delete_by_id(integration_id)
    return {"message": "Google integration disconnected successfully", "integrationId": integration_id}


def _is_expired(expiry: Optional[datetime], now: datetime) -> bool:
    if expiry is None:
        return False
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry <= now

@router.get("/google/status")
async def google_status(request: Request, orgId: str = Query(...)):
    """Connected Google accounts of an organization, newest first"""
    user_id = get_user_id(request)
    try:
        await integration_registry.require_member(user_id, orgId)
    except IntegrationError as e:
        raise to_http_exception(e)

    integrations = await integration_registry.find_google_by_org(orgId)
    now = datetime.now(timezone.utc)
    return {
        "isConnected": bool(integrations),
        "integrations": [
            {
                "id": integration.id,
                "name": integration.display_name,
                "email": integration.email,
                "authMethod": integration.auth_method.value if integration.auth_method else None,
                "scopes": integration.scopes,
                "connectedAt": integration.created_at.isoformat(),
                "lastSyncedAt": integration.last_synced_at.isoformat() if integration.last_synced_at else None,
                "tokenExpired": _is_expired(integration.expiry_date, now),
            }
            for integration in integrations
        ],
    }
