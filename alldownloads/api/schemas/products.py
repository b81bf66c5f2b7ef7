from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ProductResponse(BaseModel):
    id: str
    name: str
    vendor: str
    category: str
    description: str
    icon_url: str
    website_url: str
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    items: list[ProductResponse]


class ProductVersionResponse(BaseModel):
    id: str
    version: str
    platform: str
    architecture: str
    download_url: str
    checksum: str
    checksum_type: str
    file_size: int
    filename: str
    is_latest: bool
    last_fetched: datetime
    created_at: datetime
    updated_at: datetime


class ProductDetailResponse(ProductResponse):
    versions: list[ProductVersionResponse]
