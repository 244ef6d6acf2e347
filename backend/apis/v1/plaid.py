import logging

from fastapi import APIRouter, Request

from apis.v1.errors import get_user_id, to_http_exception
from core.exceptions import IntegrationError
from views.integration_registry import integration_registry
from views.plaid_adapter import PlaidClient
from views.schemas.integration import PlaidExchangeRequest, PlaidLinkTokenRequest

router = APIRouter(prefix="/plaid", tags=["plaid"])

logger = logging.getLogger(__name__)

plaid_client = PlaidClient()


@router.post("/link-token")
async def create_link_token(body: PlaidLinkTokenRequest, request: Request):
    """Start Plaid Link for an organization"""
    user_id = get_user_id(request)
    try:
        await integration_registry.require_admin(user_id, body.org_id)
        return await plaid_client.create_link_token(body.org_id, user_id)
    except IntegrationError as e:
        logger.error(f"Plaid link token error: {e}")
        raise to_http_exception(e)


@router.post("/exchange-token")
async def exchange_token(body: PlaidExchangeRequest, request: Request):
    """Exchange a Link public token and store the resulting access token"""
    user_id = get_user_id(request)
    try:
        await integration_registry.require_admin(user_id, body.org_id)
        access_token, item_id = await plaid_client.exchange_public_token(body.public_token)
    except IntegrationError as e:
        logger.error(f"Plaid token exchange error: {e}")
        raise to_http_exception(e)

    integration = await integration_registry.create_plaid(
        body.org_id, access_token, item_id, name=body.name, created_by=user_id
    )
    return {
        "message": "Plaid connected successfully",
        "integrationId": integration.id,
        "itemId": item_id,
    }
