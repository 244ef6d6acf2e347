from enum import Enum


class IntegrationSource(str, Enum):
    ACUITY = "acuity"
    GOOGLE = "google"
    PLAID = "plaid"
    QUICKBOOKS = "quickbooks"


# Sources limited to one integration per organization
SINGLE_ACCOUNT_SOURCES = (IntegrationSource.ACUITY, IntegrationSource.PLAID, IntegrationSource.QUICKBOOKS)


class GoogleAuthMethod(str, Enum):
    OAUTH = "oauth"
    SERVICE_ACCOUNT = "service_account"


class OrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class IntegrationStatus(str, Enum):
    CONNECTED = "connected"
    INACTIVE = "inactive"
