import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from apis.v1.errors import get_user_id, to_http_exception
from core.exceptions import IntegrationError
from views.data_retrieval_service import data_retrieval_service
from views.enums import IntegrationSource
from views.integration_registry import integration_registry
from views.schemas.retrieval import RetrieveRequest, RetrieveResponse, RetrieveSummary, SaveRetrievedRequest

router = APIRouter(prefix="/data", tags=["data"])

logger = logging.getLogger(__name__)


async def _integration_id_for_source(org_id: str, source: Optional[str]) -> str:
    """The org's integration for a source, newest first for Google"""
    if not source:
        raise HTTPException(status_code=400, detail="Integration ID or source required when not retrieving from all")
    try:
        source = IntegrationSource(source)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown integration source: {source}")

    if source == IntegrationSource.GOOGLE:
        found = await integration_registry.find_google_by_org(org_id)
        integration = found[0] if found else None
    else:
        integration = await integration_registry.find_by_org(org_id, source)
    if integration is None:
        raise HTTPException(status_code=404, detail=f"No {source.value} integration connected")
    return integration.id


@router.post("/retrieve")
async def retrieve_data(body: RetrieveRequest, request: Request):
    """Retrieve records from one integration or from all of an org's integrations"""
    user_id = get_user_id(request)
    options = body.to_options()

    try:
        await integration_registry.require_member(user_id, body.org_id)

        if body.retrieve_from_all:
            results = await data_retrieval_service.retrieve_from_all_integrations(
                body.org_id, options, data_types=body.data_types
            )
        else:
            integration_id = body.integration_id or await _integration_id_for_source(body.org_id, body.integration_source)
            data_type = body.data_types[0] if body.data_types else None
            integration = await integration_registry.find_by_id(integration_id)
            if integration is not None and integration.org_id != body.org_id:
                raise HTTPException(status_code=404, detail="Integration not found")
            results = [await data_retrieval_service.retrieve_from_integration(integration_id, data_type, options)]
    except IntegrationError as e:
        logger.error(f"Data retrieval error: {e}")
        raise to_http_exception(e)

    response = RetrieveResponse(
        data=results,
        summary=RetrieveSummary(
            total_sources=len(results),
            total_records=sum(result.metadata.total_count for result in results),
            retrieved_at=datetime.now(timezone.utc),
        ),
    )
    return response.model_dump(mode="json", by_alias=True)


@router.get("/retrieve")
async def get_capabilities(source: Optional[str] = None):
    """Data types available per integration source"""
    if source:
        return {"dataTypes": data_retrieval_service.get_available_data_types(source)}
    return {"capabilities": data_retrieval_service.get_capabilities()}


@router.post("/save")
async def save_retrieved_data(body: SaveRetrievedRequest, request: Request):
    user_id = get_user_id(request)
    try:
        await integration_registry.require_member(user_id, body.org_id)
    except IntegrationError as e:
        raise to_http_exception(e)

    data_import = await data_retrieval_service.save_retrieved_data(body.org_id, body.data, user_id)
    return data_import.model_dump(mode="json", by_alias=True)


@router.get("/imports")
async def list_imports(request: Request, orgId: str = Query(...)):
    user_id = get_user_id(request)
    try:
        await integration_registry.require_member(user_id, orgId)
    except IntegrationError as e:
        raise to_http_exception(e)

    imports = await integration_registry.list_data_imports(orgId)
    return [data_import.model_dump(mode="json", by_alias=True) for data_import in imports]
