"""Storage account and category selection routes."""

import logging
from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException

from uploadcenter.api.dependencies import get_engine
from uploadcenter.core.exceptions import (
    AccountUnavailableError,
    BackendError,
    CategoryNotFoundError,
)
from uploadcenter.models.api import AccountResponse, CategoryResponse, SelectCategoryRequest
from uploadcenter.queue.engine import UploadQueueEngine

router = APIRouter(prefix="/api/v1", tags=["accounts"])
logger = logging.getLogger(__name__)


def _accounts(engine: UploadQueueEngine) -> List[AccountResponse]:
    active = engine.active_account
    exhausted = engine.exhausted_accounts
    return [
        AccountResponse(
            id=account.id,
            name=account.name,
            provider=account.provider,
            url_endpoint=account.url_endpoint,
            active=active is not None and account.id == active.id,
            exhausted=account.id in exhausted,
        )
        for account in engine.accounts
    ]


def _categories(engine: UploadQueueEngine) -> List[CategoryResponse]:
    return [
        CategoryResponse(
            id=category.id,
            name=category.name,
            color=category.color,
            icon=category.icon,
            selected=category.id == engine.selected_category_id,
        )
        for category in engine.categories
    ]


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(engine: UploadQueueEngine = Depends(get_engine)) -> List[AccountResponse]:
    return _accounts(engine)


@router.post("/accounts/refresh", response_model=List[AccountResponse])
async def refresh_accounts(engine: UploadQueueEngine = Depends(get_engine)) -> List[AccountResponse]:
    """Reload active storage accounts from the Backend."""
    try:
        await engine.load_accounts()
    except BackendError as e:
        logger.error(f"Failed to load storage accounts: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to load storage accounts: {e}")
    return _accounts(engine)


@router.post("/accounts/reset-exhausted", response_model=List[AccountResponse])
async def reset_exhausted(engine: UploadQueueEngine = Depends(get_engine)) -> List[AccountResponse]:
    engine.reset_exhausted()
    return _accounts(engine)


@router.post("/accounts/{account_id}/select", response_model=List[AccountResponse])
async def select_account(
    account_id: str,
    engine: UploadQueueEngine = Depends(get_engine),
) -> List[AccountResponse]:
    try:
        engine.select_account(account_id)
    except AccountUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _accounts(engine)


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(engine: UploadQueueEngine = Depends(get_engine)) -> List[CategoryResponse]:
    return _categories(engine)


@router.post("/categories/refresh", response_model=List[CategoryResponse])
async def refresh_categories(engine: UploadQueueEngine = Depends(get_engine)) -> List[CategoryResponse]:
    try:
        await engine.load_categories()
    except BackendError as e:
        logger.error(f"Failed to load categories: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to load categories: {e}")
    return _categories(engine)


@router.post("/categories/select", response_model=List[CategoryResponse])
async def select_category(
    request: SelectCategoryRequest = Body(...),
    engine: UploadQueueEngine = Depends(get_engine),
) -> List[CategoryResponse]:
    """Tag future uploads with a category; ``null`` clears the selection."""
    try:
        engine.select_category(request.category_id)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _categories(engine)
