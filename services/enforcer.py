"""
Enforcer — decides whether a resolved key may perform one operation.

Checks run in a fixed order and the first failure wins:

1. grant        key holds the permission for this provider  → ForbiddenError
2. entitlement  billing allows the owner (fails open)        → PaymentRequiredError
3. credential   a valid provider token exists                → UnauthorizedAccountError
4. consent      the account's granted scopes cover it        → NeedsReauthError
5. usage        recorded, best effort
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from errors import (
    ForbiddenError,
    NeedsReauthError,
    PaymentRequiredError,
    UnauthorizedAccountError,
)
from infrastructure.billing.protocol import BillingProvider
from providers.catalog import ProviderCatalog
from services.credentials import (
    AccountNotLinked,
    CredentialStore,
    RevokedCredential,
    TransientUpstream,
    ValidCredential,
)
from services.key_resolver import KeyIdentity
from services.usage import UsageRecorder
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class Authorization:
    user_id: str
    provider_id: str
    permission: str
    access_token: str
    permissions: frozenset[str]


class Enforcer:
    def __init__(
        self,
        catalog: ProviderCatalog,
        credentials: CredentialStore,
        billing: BillingProvider,
        usage: UsageRecorder,
        feature_id: str = "workspace_connector_access",
    ) -> None:
        self._catalog = catalog
        self._credentials = credentials
        self._billing = billing
        self._usage = usage
        self._feature_id = feature_id

    async def authorize(
        self, identity: KeyIdentity, provider_id: str, permission: str
    ) -> Authorization:
        definition = self._catalog.permission(provider_id, permission)
        if definition is None or not identity.grants(provider_id, permission):
            log.info(
                "permission_denied",
                key_id=identity.key_id,
                provider=provider_id,
                permission=permission,
            )
            raise ForbiddenError(
                f"Missing permission: {provider_id}:{permission}",
                details={"provider": provider_id, "permission": permission},
            )

        await self._check_entitlement(identity.user_id)

        credential = await self._credential(identity.user_id, provider_id)

        if not self._consent_covers(provider_id, permission, credential.scopes):
            log.info(
                "needs_reauth",
                user_id=identity.user_id,
                provider=provider_id,
                permission=permission,
            )
            raise NeedsReauthError(
                f"Re-link your {provider_id} account to grant {permission}.",
                details={
                    "provider": provider_id,
                    "permission": permission,
                    "required_scope": definition.required_scope,
                },
            )

        await self._usage.record(identity.user_id)

        return Authorization(
            user_id=identity.user_id,
            provider_id=provider_id,
            permission=permission,
            access_token=credential.access_token,
            permissions=identity.permissions.get(provider_id, frozenset()),
        )

    async def _check_entitlement(self, user_id: str) -> None:
        try:
            decision = await self._billing.check(user_id, self._feature_id)
        except Exception as e:
            log.warning(
                "billing_check_failed_open",
                user_id=user_id,
                feature_id=self._feature_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if not decision.allowed:
            raise PaymentRequiredError(
                "An active subscription is required to use the API.",
                details={"feature_id": self._feature_id},
            )

    async def _credential(self, user_id: str, provider_id: str) -> ValidCredential:
        try:
            return await self._credentials.get_credential(user_id, provider_id)
        except AccountNotLinked as e:
            raise UnauthorizedAccountError(
                f"No {provider_id} account is linked. Link one in the dashboard.",
                details={"provider": provider_id, "reason": "account_not_linked"},
            ) from e
        except RevokedCredential as e:
            raise UnauthorizedAccountError(
                f"The {provider_id} account needs to be re-linked.",
                details={"provider": provider_id, "reason": "credential_revoked"},
            ) from e
        except TransientUpstream as e:
            raise UnauthorizedAccountError(
                f"Could not refresh the {provider_id} credential. Try again shortly.",
                details={"provider": provider_id, "reason": "refresh_transient"},
            ) from e

    def _consent_covers(
        self, provider_id: str, permission: str, scopes: Optional[frozenset[str]]
    ) -> bool:
        if scopes is None:
            # Grant never recorded: only post-launch permissions are suspect
            return not self._catalog.requires_reauth(provider_id, [permission])
        return permission in self._catalog.permissions_for_scopes(provider_id, scopes)
