from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from rentals.api.deps import engine_dep
from rentals.schemas.products import (
    AvailabilityOut,
    PageInfoOut,
    ProductOut,
    ProductsPageOut,
)
from rentals.services.factory import Engine

router = APIRouter(prefix="/v1", tags=["products"])


@router.get("/products", response_model=ProductsPageOut)
async def list_products(
    *,
    engine: Engine = Depends(engine_dep),
    limit: int = Query(default=25, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    search: str = Query(default="", max_length=100),
    force_refresh: bool = Query(default=False),
) -> ProductsPageOut:
    result = await engine.products.fetch_products(
        limit=limit, page=page, search=search, force_refresh=force_refresh
    )
    return ProductsPageOut(
        products=[
            ProductOut(
                id=p.id,
                name=p.name,
                record=p.record,
                availability=AvailabilityOut(**asdict(p.availability)),
            )
            for p in result.products
        ],
        page_info=PageInfoOut(**asdict(result.page_info)),
        error=result.error,
    )
