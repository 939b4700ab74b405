"""
Static provider descriptors.

Everything here is immutable once constructed: a Provider is configuration,
built once at process start and read concurrently by every request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from pydantic import BaseModel

from errors import ValidationError
from infrastructure.http_client import HttpClient


@dataclass(frozen=True)
class PermissionDefinition:
    id: str
    label: str
    description: str
    # Full OAuth scope string, as it appears in the provider's scope map
    required_scope: str
    # Introduced after users' original consent; older grants may lack the scope
    requires_reauth: bool = False


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str
    client_secret: str
    token_endpoint: str
    authorization_endpoint: str
    scopes: tuple[str, ...] = ()
    additional_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class ProviderUI:
    name: str
    description: str
    icon: str
    color: Optional[str] = None


@dataclass(frozen=True)
class ProviderCall:
    """Everything an operation handler needs to make one upstream call."""

    access_token: str
    http: HttpClient
    path_params: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: Optional[BaseModel] = None

    def query_str(self, name: str) -> Optional[str]:
        value = self.query.get(name)
        return value if value else None

    def query_int(self, name: str, default: Optional[int] = None) -> Optional[int]:
        raw = self.query.get(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer", field=name)

    def query_list(self, name: str) -> Optional[list[str]]:
        """Comma-separated query value as a list, or None when absent."""
        raw = self.query.get(name)
        if not raw:
            return None
        return [part.strip() for part in raw.split(",") if part.strip()]


OperationHandler = Callable[[ProviderCall], Awaitable[Any]]


@dataclass(frozen=True)
class Operation:
    """One permission-gated provider call, exposed as one HTTP route."""

    name: str
    method: str
    path: str
    permission: str
    handler: OperationHandler
    summary: str = ""
    tag: str = ""
    body_model: Optional[type[BaseModel]] = None


@dataclass(frozen=True)
class Provider:
    id: str
    ui: ProviderUI
    oauth: OAuthConfig
    permissions: tuple[PermissionDefinition, ...]
    scope_to_permissions: Mapping[str, frozenset[str]]
    permission_groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    operations: tuple[Operation, ...] = ()
    openapi_tags: tuple[Mapping[str, str], ...] = ()

    def __post_init__(self) -> None:
        # Freeze the mappings so a registered provider cannot be mutated
        object.__setattr__(
            self,
            "scope_to_permissions",
            MappingProxyType(
                {s: frozenset(p) for s, p in self.scope_to_permissions.items()}
            ),
        )
        object.__setattr__(
            self,
            "permission_groups",
            MappingProxyType(
                {g: tuple(p) for g, p in self.permission_groups.items()}
            ),
        )

    @property
    def permission_ids(self) -> frozenset[str]:
        return frozenset(p.id for p in self.permissions)

    def permission(self, permission_id: str) -> Optional[PermissionDefinition]:
        for definition in self.permissions:
            if definition.id == permission_id:
                return definition
        return None


def scope_map(pairs: Iterable[tuple[str, Iterable[str]]]) -> dict[str, frozenset[str]]:
    """Build a scope → permission-ids mapping from (scope, permissions) pairs."""
    result: dict[str, frozenset[str]] = {}
    for scope, perms in pairs:
        result[scope] = result.get(scope, frozenset()) | frozenset(perms)
    return result
