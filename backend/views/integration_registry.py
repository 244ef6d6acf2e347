"""
Per-organization integration records.

Records live in module-level stores, keyed by integration id. Secrets are
encrypted before they reach the store and only decrypted on request through
get_decrypted_integration / get_decrypted_by_id.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

from core.exceptions import (
    AccessDeniedError,
    IntegrationNotFoundError,
    PermissionCheckUnavailableError,
)
from core.security import decrypt_json, decrypt_token, encrypt_json, encrypt_token
from views.enums import SINGLE_ACCOUNT_SOURCES, GoogleAuthMethod, IntegrationSource, OrgRole
from views.schemas.integration import DecryptedIntegration, Integration
from views.schemas.retrieval import DataImport

logger = logging.getLogger(__name__)

integrations_db: Dict[str, Integration] = {}
org_members_db: Dict[Tuple[str, str], OrgRole] = {}
data_imports_db: Dict[str, DataImport] = {}

# Secret fields holding JSON documents rather than plain tokens
JSON_SECRETS = ("service_account",)

ADMIN_ROLES = (OrgRole.OWNER, OrgRole.ADMIN)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IntegrationRegistry:
    def __init__(
        self,
        integrations: Optional[MutableMapping[str, Integration]] = None,
        members: Optional[MutableMapping[Tuple[str, str], OrgRole]] = None,
        data_imports: Optional[MutableMapping[str, DataImport]] = None,
    ):
        self._integrations = integrations if integrations is not None else integrations_db
        self._members = members if members is not None else org_members_db
        self._data_imports = data_imports if data_imports is not None else data_imports_db

    # --- creation ---

    @staticmethod
    async def _encrypt_secrets(secrets: Dict[str, Any]) -> Dict[str, str]:
        """Encrypt secret fields in a worker thread; key derivation is slow"""

        def encrypt_all() -> Dict[str, str]:
            return {
                field: encrypt_json(value) if field in JSON_SECRETS else encrypt_token(value)
                for field, value in secrets.items()
                if value
            }

        return await asyncio.to_thread(encrypt_all)

    async def _upsert_single_account(
        self,
        org_id: str,
        source: IntegrationSource,
        secrets: Dict[str, str],
        external_account_id: Optional[str],
        name: Optional[str],
        created_by: Optional[str],
    ) -> Integration:
        existing = await self.find_by_org(org_id, source, include_inactive=True)
        if existing:
            updated = existing.model_copy(
                update={
                    "secrets": secrets,
                    "external_account_id": external_account_id,
                    "display_name": name or existing.display_name,
                    "last_synced_at": _now(),
                    "is_active": True,
                }
            )
            self._integrations[existing.id] = updated
            logger.info(f"Updated {source.value} integration {existing.id} for org {org_id}")
            return updated

        integration = Integration(
            id=str(uuid.uuid4()),
            org_id=org_id,
            source=source,
            display_name=name,
            secrets=secrets,
            external_account_id=external_account_id,
            created_by=created_by,
            created_at=_now(),
            last_synced_at=_now(),
        )
        self._integrations[integration.id] = integration
        logger.info(f"Created {source.value} integration {integration.id} for org {org_id}")
        return integration

    async def create_acuity(
        self,
        org_id: str,
        acuity_user_id: str,
        api_key: str,
        name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Integration:
        """Connect Acuity for an org, replacing the credentials of an existing connection"""
        return await self._upsert_single_account(
            org_id,
            IntegrationSource.ACUITY,
            await self._encrypt_secrets({"api_key": api_key}),
            acuity_user_id,
            name,
            created_by,
        )

    async def create_plaid(
        self,
        org_id: str,
        access_token: str,
        item_id: str,
        name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Integration:
        return await self._upsert_single_account(
            org_id,
            IntegrationSource.PLAID,
            await self._encrypt_secrets({"access_token": access_token}),
            item_id,
            name,
            created_by,
        )

    async def create_google(
        self,
        org_id: str,
        auth_method: GoogleAuthMethod,
        name: str,
        email: Optional[str],
        scopes: List[str],
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expiry_date: Optional[datetime] = None,
        credentials: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> Integration:
        """Always inserts: an org may connect several Google accounts"""
        secrets = await self._encrypt_secrets(
            {"access_token": access_token, "refresh_token": refresh_token, "service_account": credentials}
        )

        integration = Integration(
            id=str(uuid.uuid4()),
            org_id=org_id,
            source=IntegrationSource.GOOGLE,
            display_name=name,
            secrets=secrets,
            external_account_id=email,
            auth_method=auth_method,
            email=email,
            scopes=list(scopes),
            expiry_date=expiry_date,
            created_by=user_id,
            created_at=_now(),
        )
        self._integrations[integration.id] = integration
        logger.info(f"Created google ({auth_method.value}) integration {integration.id} for org {org_id}")
        return integration

    # --- lookup ---

    async def find_by_id(self, integration_id: str) -> Optional[Integration]:
        integration = self._integrations.get(integration_id)
        if integration is None or not integration.is_active:
            return None
        return integration

    async def find_by_org(
        self, org_id: str, source: IntegrationSource, include_inactive: bool = False
    ) -> Optional[Integration]:
        """Single-account sources only; use find_google_by_org for Google"""
        if source not in SINGLE_ACCOUNT_SOURCES:
            raise ValueError(f"{source.value} allows several integrations per organization")
        for integration in self._integrations.values():
            if integration.org_id != org_id or integration.source != source:
                continue
            if integration.is_active or include_inactive:
                return integration
        return None

    async def find_google_by_org(self, org_id: str) -> List[Integration]:
        found = [
            integration
            for integration in self._integrations.values()
            if integration.org_id == org_id
            and integration.source == IntegrationSource.GOOGLE
            and integration.is_active
        ]
        found.sort(key=lambda x: x.created_at, reverse=True)
        return found

    async def list_for_org(self, org_id: str, include_inactive: bool = False) -> List[Integration]:
        return [
            integration
            for integration in self._integrations.values()
            if integration.org_id == org_id and (integration.is_active or include_inactive)
        ]

    # --- updates ---

    async def update_last_synced(self, integration_id: str) -> Optional[Integration]:
        integration = self._integrations.get(integration_id)
        if integration is None:
            return None
        updated = integration.model_copy(update={"last_synced_at": _now()})
        self._integrations[integration_id] = updated
        return updated

    async def update_google_tokens(
        self,
        integration_id: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expiry_date: Optional[datetime] = None,
    ) -> Integration:
        integration = self._integrations.get(integration_id)
        if integration is None or integration.source != IntegrationSource.GOOGLE:
            raise IntegrationNotFoundError(integration_id)

        secrets = dict(integration.secrets)
        secrets.update(await self._encrypt_secrets({"access_token": access_token, "refresh_token": refresh_token}))
        updated = integration.model_copy(update={"secrets": secrets, "expiry_date": expiry_date})
        self._integrations[integration_id] = updated
        return updated

    async def deactivate(self, integration_id: str) -> Optional[Integration]:
        integration = self._integrations.get(integration_id)
        if integration is None:
            return None
        updated = integration.model_copy(update={"is_active": False})
        self._integrations[integration_id] = updated
        return updated

    # --- removal ---

    async def delete(self, org_id: str, source: IntegrationSource) -> int:
        doomed = [
            integration_id
            for integration_id, integration in self._integrations.items()
            if integration.org_id == org_id and integration.source == source
        ]
        for integration_id in doomed:
            del self._integrations[integration_id]
        return len(doomed)

    async def delete_by_id(self, integration_id: str) -> None:
        if self._integrations.pop(integration_id, None) is None:
            raise IntegrationNotFoundError(integration_id)

    async def delete_for_org(self, org_id: str) -> int:
        """Remove every integration of a deleted organization"""
        doomed = [i for i, integration in self._integrations.items() if integration.org_id == org_id]
        for integration_id in doomed:
            del self._integrations[integration_id]
        logger.info(f"Deleted {len(doomed)} integrations for org {org_id}")
        return len(doomed)

    # --- credentials ---

    def _decrypt(self, integration: Integration) -> DecryptedIntegration:
        credentials: Dict[str, Any] = {}
        for field, blob in integration.secrets.items():
            credentials[field] = decrypt_json(blob) if field in JSON_SECRETS else decrypt_token(blob)

        if integration.source == IntegrationSource.ACUITY:
            credentials["user_id"] = integration.external_account_id
        elif integration.source == IntegrationSource.PLAID:
            credentials["item_id"] = integration.external_account_id
        elif integration.source == IntegrationSource.GOOGLE:
            credentials["auth_method"] = integration.auth_method.value if integration.auth_method else None
            credentials["email"] = integration.email
            credentials["scopes"] = list(integration.scopes)

        return DecryptedIntegration(integration=integration, credentials=credentials)

    async def get_decrypted_integration(
        self, org_id: str, source: IntegrationSource = IntegrationSource.ACUITY
    ) -> Optional[DecryptedIntegration]:
        integration = await self.find_by_org(org_id, source)
        if not integration:
            return None
        return await asyncio.to_thread(self._decrypt, integration)

    async def get_decrypted_by_id(self, integration_id: str) -> Optional[DecryptedIntegration]:
        integration = await self.find_by_id(integration_id)
        if not integration:
            return None
        return await asyncio.to_thread(self._decrypt, integration)

    # --- membership ---

    async def add_member(self, org_id: str, user_id: str, role: OrgRole = OrgRole.MEMBER) -> None:
        self._members[(user_id, org_id)] = role

    async def _lookup_role(self, user_id: str, org_id: str) -> Optional[OrgRole]:
        try:
            return self._members.get((user_id, org_id))
        except Exception as e:
            logger.error(f"Membership lookup failed for user {user_id} in org {org_id}: {e}")
            raise PermissionCheckUnavailableError("Permission check unavailable") from e

    async def check_org_membership(self, user_id: str, org_id: str) -> bool:
        return await self._lookup_role(user_id, org_id) is not None

    async def check_admin_access(self, user_id: str, org_id: str) -> bool:
        return await self._lookup_role(user_id, org_id) in ADMIN_ROLES

    async def require_member(self, user_id: str, org_id: str) -> None:
        if not await self.check_org_membership(user_id, org_id):
            raise AccessDeniedError(f"User {user_id} is not a member of organization {org_id}")

    async def require_admin(self, user_id: str, org_id: str) -> None:
        if not await self.check_admin_access(user_id, org_id):
            raise AccessDeniedError(f"User {user_id} is not an admin of organization {org_id}")

    # --- snapshots ---

    async def save_data_import(self, data_import: DataImport) -> DataImport:
        self._data_imports[data_import.id] = data_import
        return data_import

    async def list_data_imports(self, org_id: str) -> List[DataImport]:
        imports = [d for d in self._data_imports.values() if d.org_id == org_id]
        imports.sort(key=lambda x: x.created_at, reverse=True)
        return imports


integration_registry = IntegrationRegistry()
