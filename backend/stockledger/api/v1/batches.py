"""
Batch API Routes - stock batch ledger
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional, Union

from stockledger.core.database import get_db
from stockledger.core.security import get_current_active_user, company_scope
from stockledger.schemas import (
    StockStatusEnum, BatchCreate, BatchUpdate, BatchTransferRequest, BatchResponse,
    BatchCreateResponse, BatchDeleteResponse, SplitTransferResponse, RelocateTransferResponse
)
from stockledger.services.batch_service import BatchService

router = APIRouter(prefix="/batches", tags=["Batches"])


@router.get("", response_model=List[BatchResponse])
async def list_batches(
    item_id: Optional[int] = None,
    location_id: Optional[int] = None,
    status: Optional[StockStatusEnum] = None,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """List batches, newest first"""
    batch_service = BatchService(db, company_scope(current_user), current_user)
    return batch_service.list(item_id, location_id, status.value if status else None)


@router.post("", response_model=BatchCreateResponse, status_code=201)
async def create_batch(
    batch_data: BatchCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Create a batch, or add to an equivalent existing one"""
    batch_service = BatchService(db, company_scope(current_user), current_user)
    outcome = batch_service.create(batch_data)
    db.commit()
    db.refresh(outcome.batch)
    return BatchCreateResponse(
        batch=BatchResponse.model_validate(outcome.batch),
        consolidated=outcome.consolidated,
        debited_amount=outcome.debited_amount
    )


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Get batch by ID"""
    batch_service = BatchService(db, company_scope(current_user), current_user)
    return batch_service.get_by_id(batch_id)


@router.patch("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    batch_id: int,
    batch_data: BatchUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Update a batch; status changes apply their cash and date effects"""
    batch_service = BatchService(db, company_scope(current_user), current_user)
    batch = batch_service.update(batch_id, batch_data)
    db.commit()
    db.refresh(batch)
    return batch


@router.delete("/{batch_id}", response_model=BatchDeleteResponse)
async def delete_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Delete a batch, refunding any committed cost"""
    batch_service = BatchService(db, company_scope(current_user), current_user)
    refunded = batch_service.delete(batch_id)
    db.commit()
    return {"message": "Batch deleted successfully", "refunded_amount": refunded}


@router.post(
    "/{batch_id}/transfer",
    response_model=Union[SplitTransferResponse, RelocateTransferResponse]
)
async def transfer_batch(
    batch_id: int,
    transfer_data: BatchTransferRequest,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Move a batch, or part of it, to another location"""
    batch_service = BatchService(db, company_scope(current_user), current_user)
    outcome = batch_service.transfer(batch_id, transfer_data.to_location_id, transfer_data.quantity)
    result = outcome.to_dict()
    db.commit()
    return result
