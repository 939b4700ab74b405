"""
ProviderCatalog — the set of delegated-identity providers the gateway serves.

The catalog is constructed explicitly at process start, filled by a single
registration pass, then frozen. After ``freeze()`` it is read-only, so the
request path reads it without locks. It holds no per-user state and does
no I/O.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from errors import ValidationError
from providers.types import PermissionDefinition, Provider
from shared.logging import get_logger

log = get_logger(__name__)


class UnknownProviderError(LookupError):
    """Raised by ``ProviderCatalog.get`` for an unregistered provider id."""


class CatalogFrozenError(RuntimeError):
    """Raised when registering into a catalog after startup."""


class ProviderCatalog:
    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: dict[str, Provider] = {}
        self._frozen = False
        for provider in providers:
            self.register(provider)

    # ── Registration ─────────────────────────────────────────────────────────

    def register(self, provider: Provider) -> None:
        """Add *provider*. A duplicate id overwrites the earlier registration."""
        if self._frozen:
            raise CatalogFrozenError(
                f"cannot register provider {provider.id!r}: catalog is frozen"
            )
        if provider.id in self._providers:
            log.warning("provider_reregistered", provider=provider.id)
        self._providers[provider.id] = provider
        log.info(
            "provider_registered",
            provider=provider.id,
            permissions=len(provider.permissions),
            operations=len(provider.operations),
            oauth_configured=provider.oauth.is_configured,
        )

    def freeze(self) -> "ProviderCatalog":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ── Lookups ──────────────────────────────────────────────────────────────

    def get(self, provider_id: str) -> Provider:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise UnknownProviderError(provider_id) from None

    def find(self, provider_id: str) -> Optional[Provider]:
        return self._providers.get(provider_id)

    def has(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def all(self) -> list[Provider]:
        return list(self._providers.values())

    def ids(self) -> list[str]:
        return list(self._providers.keys())

    def permission(
        self, provider_id: str, permission_id: str
    ) -> Optional[PermissionDefinition]:
        provider = self._providers.get(provider_id)
        if provider is None:
            return None
        return provider.permission(permission_id)

    def required_scope(self, provider_id: str, permission_id: str) -> Optional[str]:
        """OAuth scope that must be granted for *permission_id*, if known."""
        definition = self.permission(provider_id, permission_id)
        return definition.required_scope if definition else None

    def permissions_for_scopes(
        self, provider_id: str, granted_scopes: Iterable[str]
    ) -> frozenset[str]:
        """Permission ids reachable from the union of *granted_scopes*."""
        provider = self._providers.get(provider_id)
        if provider is None:
            return frozenset()
        available: set[str] = set()
        for scope in set(granted_scopes):
            available |= provider.scope_to_permissions.get(scope, frozenset())
        return frozenset(available)

    def requires_reauth(self, provider_id: str, permission_ids: Iterable[str]) -> bool:
        """True if any of *permission_ids* was added after original consent."""
        provider = self._providers.get(provider_id)
        if provider is None:
            return False
        return any(
            (d := provider.permission(p)) is not None and d.requires_reauth
            for p in permission_ids
        )

    # ── Key grant validation ─────────────────────────────────────────────────

    def validate_grants(
        self, permissions: Mapping[str, Iterable[str]]
    ) -> dict[str, list[str]]:
        """Check a requested key grant against the catalog.

        Returns the grant with duplicates removed and order preserved.
        Raises ``ValidationError`` for unknown providers or permissions, or
        when nothing at all is granted.
        """
        normalised: dict[str, list[str]] = {}
        for provider_id, requested in permissions.items():
            provider = self._providers.get(provider_id)
            if provider is None:
                raise ValidationError(
                    f"unknown provider: {provider_id}", field="permissions"
                )
            seen: list[str] = []
            for permission_id in requested:
                if permission_id not in provider.permission_ids:
                    raise ValidationError(
                        f"unknown permission for {provider_id}: {permission_id}",
                        field="permissions",
                    )
                if permission_id not in seen:
                    seen.append(permission_id)
            if seen:
                normalised[provider_id] = seen

        if not normalised:
            raise ValidationError(
                "at least one permission is required", field="permissions"
            )
        return normalised

    # ── Aggregations (docs, dashboard) ───────────────────────────────────────

    def all_permissions(self) -> dict[str, list[PermissionDefinition]]:
        return {p.id: list(p.permissions) for p in self._providers.values()}

    def all_permission_groups(self) -> dict[str, dict[str, list[str]]]:
        return {
            p.id: {name: list(perms) for name, perms in p.permission_groups.items()}
            for p in self._providers.values()
        }

    def all_openapi_tags(self) -> list[dict[str, str]]:
        tags = [{"name": "System", "description": "Health and status endpoints"}]
        for provider in self._providers.values():
            tags.extend(dict(tag) for tag in provider.openapi_tags)
        return tags

    def ui_configs(self) -> list[dict[str, Optional[str]]]:
        return [
            {
                "id": p.id,
                "name": p.ui.name,
                "description": p.ui.description,
                "icon": p.ui.icon,
                "color": p.ui.color,
            }
            for p in self._providers.values()
        ]
