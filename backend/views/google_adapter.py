import logging
from typing import Any, Dict, List

from core.exceptions import MissingCredentialsError
from views.enums import GoogleAuthMethod, IntegrationSource
from views.schemas.retrieval import RetrievalOptions
from views.source_adapter import SourceAdapter

logger = logging.getLogger(__name__)


class GoogleAdapter(SourceAdapter):
    """Google Sheets, Calendar and Drive.

    Data retrieval is not wired to the Google APIs yet: every supported type
    returns an empty result set once credentials check out.
    """

    source = IntegrationSource.GOOGLE
    supported_data_types = ("sheets", "calendar", "drive")
    default_data_type = "sheets"
    public_credentials = ("auth_method", "email", "scopes")

    def check_credentials(self, credentials: Dict[str, Any]) -> None:
        if credentials.get("auth_method") == GoogleAuthMethod.SERVICE_ACCOUNT.value:
            if not credentials.get("service_account"):
                raise MissingCredentialsError(self.source.value, ["service_account"])
        elif not credentials.get("access_token"):
            raise MissingCredentialsError(self.source.value, ["access_token"])

    async def fetch(
        self, credentials: Dict[str, Any], data_type: str, options: RetrievalOptions
    ) -> List[Dict[str, Any]]:
        self.ensure_supported(data_type)
        self.check_credentials(credentials)
        # TODO: read spreadsheet values through the Sheets v4 API once sheet selection is stored per integration
        logger.info(f"Google {data_type} retrieval is not implemented, returning no records")
        return []
