from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from alldownloads.catalog.types import ProductDefinition
from alldownloads.core.config import Settings
from alldownloads.db.models import ProductCategory
from alldownloads.sources.arch import ArchLinuxCapability
from alldownloads.sources.base import FetchCapability
from alldownloads.sources.chrome import ChromeCapability
from alldownloads.sources.debian import DebianCapability
from alldownloads.sources.firefox import FirefoxCapability
from alldownloads.sources.http import SourceHttpClient
from alldownloads.sources.static import kali_capability
from alldownloads.sources.ubuntu import UbuntuCapability
from alldownloads.sources.vscode import VSCodeCapability


class CapabilityNotFoundError(RuntimeError):
    pass


class CapabilityRegistry(Mapping[str, FetchCapability]):
    """Read-only product id -> capability table, built once at startup."""

    def __init__(self, capabilities: Iterable[FetchCapability]):
        table: dict[str, FetchCapability] = {}
        for capability in capabilities:
            product_id = capability.product_id.strip()
            if not product_id:
                raise ValueError("Capability product_id cannot be blank")
            if product_id in table:
                raise ValueError(f"Duplicate capability for product: {product_id}")
            table[product_id] = capability
        self._table = MappingProxyType(table)

    def __getitem__(self, product_id: str) -> FetchCapability:
        return self._table[product_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def require(self, product_id: str) -> FetchCapability:
        capability = self._table.get(product_id)
        if capability is None:
            raise CapabilityNotFoundError(f"No fetch capability available for product: {product_id}")
        return capability

    def product_ids(self) -> list[str]:
        return sorted(self._table)


PRODUCT_DEFINITIONS: tuple[ProductDefinition, ...] = (
    ProductDefinition(
        id="ubuntu",
        name="Ubuntu",
        vendor="Canonical",
        category=ProductCategory.OS,
        description="Ubuntu desktop and server installation images",
        website_url="https://ubuntu.com/",
    ),
    ProductDefinition(
        id="kali",
        name="Kali Linux",
        vendor="OffSec",
        category=ProductCategory.OS,
        description="Penetration testing Linux distribution installer images",
        website_url="https://www.kali.org/",
    ),
    ProductDefinition(
        id="debian",
        name="Debian",
        vendor="Debian Project",
        category=ProductCategory.OS,
        description="Debian netinst and installation images",
        website_url="https://www.debian.org/",
    ),
    ProductDefinition(
        id="arch",
        name="Arch Linux",
        vendor="Arch Linux",
        category=ProductCategory.OS,
        description="Rolling-release Arch Linux installation image",
        website_url="https://archlinux.org/",
    ),
    ProductDefinition(
        id="firefox",
        name="Firefox",
        vendor="Mozilla",
        category=ProductCategory.APP,
        description="Mozilla Firefox web browser installers",
        website_url="https://www.mozilla.org/firefox/",
    ),
    ProductDefinition(
        id="chrome",
        name="Google Chrome",
        vendor="Google",
        category=ProductCategory.APP,
        description="Google Chrome web browser installers",
        website_url="https://www.google.com/chrome/",
    ),
    ProductDefinition(
        id="vscode",
        name="Visual Studio Code",
        vendor="Microsoft",
        category=ProductCategory.TOOL,
        description="Visual Studio Code editor installers",
        website_url="https://code.visualstudio.com/",
    ),
)


def build_default_registry(settings: Settings, client: SourceHttpClient | None = None) -> CapabilityRegistry:
    http_client = client or SourceHttpClient(
        user_agent=settings.http_user_agent,
        timeout_seconds=settings.http_timeout_seconds,
    )
    return CapabilityRegistry(
        [
            UbuntuCapability(http_client),
            kali_capability(http_client),
            DebianCapability(http_client),
            ArchLinuxCapability(http_client),
            FirefoxCapability(http_client),
            ChromeCapability(http_client),
            VSCodeCapability(http_client),
        ]
    )
