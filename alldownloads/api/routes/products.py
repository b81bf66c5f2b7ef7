from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from alldownloads.api.schemas.products import (
    ProductDetailResponse,
    ProductListResponse,
    ProductResponse,
    ProductVersionResponse,
)
from alldownloads.catalog.service import CatalogService, ProductNotFoundError
from alldownloads.catalog.types import ProductSnapshot
from alldownloads.db.session import get_session_factory

router = APIRouter(prefix="/products", tags=["products"])


def get_catalog_service() -> CatalogService:
    return CatalogService(get_session_factory())


def _product_to_dict(snapshot: ProductSnapshot) -> dict[str, Any]:
    payload = asdict(snapshot)
    payload["category"] = snapshot.category.value
    return payload


@router.get("", response_model=ProductListResponse)
def list_products(service: CatalogService = Depends(get_catalog_service)) -> ProductListResponse:
    return ProductListResponse(
        items=[ProductResponse.model_validate(_product_to_dict(item)) for item in service.list_products()]
    )


@router.get("/{product_id}", response_model=ProductDetailResponse)
def get_product(product_id: str, service: CatalogService = Depends(get_catalog_service)) -> ProductDetailResponse:
    try:
        result = service.get_product_with_versions(product_id)
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ProductDetailResponse.model_validate(
        {
            **_product_to_dict(result.product),
            "versions": [ProductVersionResponse.model_validate(asdict(version)) for version in result.versions],
        }
    )
