"""
Provider catalog construction.

build_default_catalog() registers every built-in provider and freezes the
catalog; create_app() calls it once at startup.
"""

from config import OAuthProviderSettings
from providers.catalog import CatalogFrozenError, ProviderCatalog, UnknownProviderError
from providers.google import build_google_provider
from providers.microsoft import build_microsoft_provider


def build_default_catalog(settings: OAuthProviderSettings) -> ProviderCatalog:
    catalog = ProviderCatalog()
    catalog.register(build_google_provider(settings))
    catalog.register(build_microsoft_provider(settings))
    return catalog.freeze()


__all__ = [
    "CatalogFrozenError",
    "ProviderCatalog",
    "UnknownProviderError",
    "build_default_catalog",
]
