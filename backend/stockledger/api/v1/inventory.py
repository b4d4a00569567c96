"""
Inventory API Routes - stock actions and ledger maintenance
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from stockledger.core.database import get_db
from stockledger.core.security import get_current_active_user, company_scope
from stockledger.schemas import (
    AddStockRequest, SellStockRequest, RemoveStockRequest, StockActionResponse,
    ConsistencyReportResponse
)
from stockledger.services.consistency_service import ConsistencyService
from stockledger.services.reconciliation_service import ReconciliationService
from stockledger.services.stock_action_service import StockActionService
from stockledger.services.transaction import run_atomic

router = APIRouter(prefix="/inventory", tags=["Inventory"])


# ==================== STOCK ACTIONS ====================

@router.post("/add", response_model=StockActionResponse)
async def add_stock(
    request_data: AddStockRequest,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Receive stock for an item"""
    service = StockActionService(db, company_scope(current_user), current_user)
    result = service.add_stock(request_data.item_id, request_data.quantity, request_data.reason)
    db.commit()
    return result.to_dict()


@router.post("/sell", response_model=StockActionResponse)
async def sell_stock(
    request_data: SellStockRequest,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Sell stock, oldest batches first"""
    service = StockActionService(db, company_scope(current_user), current_user)
    result = service.sell_stock(
        request_data.item_id,
        request_data.quantity,
        request_data.selling_price_srd,
        request_data.location_id
    )
    db.commit()
    return result.to_dict()


@router.post("/remove", response_model=StockActionResponse)
async def remove_stock(
    request_data: RemoveStockRequest,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Write off stock"""
    service = StockActionService(db, company_scope(current_user), current_user)
    result = service.remove_stock(request_data.item_id, request_data.quantity, request_data.reason)
    db.commit()
    return result.to_dict()


# ==================== MAINTENANCE ====================

@router.get("/consistency", response_model=ConsistencyReportResponse)
async def check_consistency(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Compare item quantities with their batches"""
    return ConsistencyService(db).check_all(company_scope(current_user))


@router.post("/consistency/fix", response_model=ConsistencyReportResponse)
async def fix_consistency(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Reconcile every item whose quantity disagrees with its batches"""
    service = ConsistencyService(db)
    report = run_atomic(
        db, lambda: service.check_all(company_scope(current_user), fix=True), "fix consistency"
    )
    db.commit()
    return report


@router.post("/reconcile")
async def reconcile_all(
    company_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Reconcile every batch-mode item of the company"""
    scope = company_scope(current_user)
    if scope is not None:
        company_id = scope
    service = ReconciliationService(db)
    results = run_atomic(db, lambda: service.reconcile_all(company_id), "reconcile items")
    changed = [r.to_dict() for r in results if r.changed]
    db.commit()
    return {"reconciled": len(results), "changed": changed}
