import logging

from fastapi import HTTPException, Request

from core.exceptions import (
    AccessDeniedError,
    DecryptionError,
    IntegrationError,
    IntegrationNotFoundError,
    MissingCredentialsError,
    PermissionCheckUnavailableError,
    SourceAPIError,
    UnsupportedDataTypeError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    IntegrationNotFoundError: 404,
    UnsupportedDataTypeError: 400,
    MissingCredentialsError: 422,
    AccessDeniedError: 403,
    PermissionCheckUnavailableError: 503,
    SourceAPIError: 502,
}


def get_user_id(request: Request) -> str:
    """Caller identity forwarded by the auth proxy"""
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def to_http_exception(error: IntegrationError) -> HTTPException:
    if isinstance(error, DecryptionError):
        # Never echo crypto details to clients
        logger.error(f"Credential decryption failed: {error}")
        return HTTPException(status_code=500, detail="Stored credentials could not be read")

    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))

    logger.error(f"Unhandled integration error: {error}")
    return HTTPException(status_code=500, detail="Integration error")
