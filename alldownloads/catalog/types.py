from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from alldownloads.db.models import ProductCategory


@dataclass(frozen=True)
class ProductDefinition:
    id: str
    name: str
    vendor: str
    category: ProductCategory
    description: str = ""
    icon_url: str = ""
    website_url: str = ""


@dataclass(slots=True)
class ProductSnapshot:
    id: str
    name: str
    vendor: str
    category: ProductCategory
    description: str
    icon_url: str
    website_url: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ProductVersionSnapshot:
    id: str
    product_id: str
    version: str
    platform: str
    architecture: str
    download_url: str
    checksum: str
    checksum_type: str
    file_size: int
    filename: str
    is_latest: bool
    etag: str
    last_fetched: datetime
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ProductWithVersions:
    product: ProductSnapshot
    versions: list[ProductVersionSnapshot]
