"""
Response DTOs for provider discovery.

ProvidersListResponse — GET /api/v1/providers
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from providers.types import Provider


class PermissionInfo(BaseModel):
    id: str
    label: str
    description: str
    requires_reauth: bool


class ProviderInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str
    icon: str
    color: Optional[str] = None
    configured: bool
    permissions: list[PermissionInfo]
    permission_groups: dict[str, list[str]]

    @classmethod
    def from_provider(cls, provider: Provider) -> "ProviderInfo":
        return cls(
            id=provider.id,
            name=provider.ui.name,
            description=provider.ui.description,
            icon=provider.ui.icon,
            color=provider.ui.color,
            configured=provider.oauth.is_configured,
            permissions=[
                PermissionInfo(
                    id=p.id,
                    label=p.label,
                    description=p.description,
                    requires_reauth=p.requires_reauth,
                )
                for p in provider.permissions
            ],
            permission_groups={
                name: list(perms) for name, perms in provider.permission_groups.items()
            },
        )


class ProvidersListResponse(BaseModel):
    providers: list[ProviderInfo]
