"""
Item API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from stockledger.core.database import get_db
from stockledger.core.security import get_current_active_user, company_scope
from stockledger.schemas import StockStatusEnum, ItemCreate, ItemUpdate, ItemResponse
from stockledger.services.item_service import ItemService

router = APIRouter(prefix="/items", tags=["Items"])


@router.get("", response_model=List[ItemResponse])
async def list_items(
    status: Optional[StockStatusEnum] = None,
    use_batch_system: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """List items for the current company"""
    item_service = ItemService(db, company_scope(current_user), current_user)
    return item_service.list(status.value if status else None, use_batch_system)


@router.post("", response_model=ItemResponse, status_code=201)
async def create_item(
    item_data: ItemCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Create a new item"""
    if item_data.company_id is None:
        item_data.company_id = current_user.company_id
    item_service = ItemService(db, company_scope(current_user), current_user)
    item = item_service.create(item_data)
    db.commit()
    db.refresh(item)
    return item


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Get item by ID"""
    item_service = ItemService(db, company_scope(current_user), current_user)
    return item_service.get_by_id(item_id)


@router.put("/{item_id}", response_model=ItemResponse)
async def update_item(
    item_id: int,
    item_data: ItemUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Update item"""
    item_service = ItemService(db, company_scope(current_user), current_user)
    item = item_service.update(item_id, item_data)
    db.commit()
    db.refresh(item)
    return item


@router.delete("/{item_id}")
async def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Delete item"""
    item_service = ItemService(db, company_scope(current_user), current_user)
    refunded = item_service.delete(item_id)
    db.commit()
    return {"message": "Item deleted successfully", "refunded_amount": refunded}


@router.post("/{item_id}/reconcile")
async def reconcile_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Recompute the item's stock from its batches"""
    item_service = ItemService(db, company_scope(current_user), current_user)
    result = item_service.reconcile(item_id)
    db.commit()
    return result.to_dict()
