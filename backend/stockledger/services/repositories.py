"""
Repositories - typed access to the entity store

Every ledger component receives the request's Session and goes through these
classes. Rows read for mutation are locked with SELECT ... FOR UPDATE where the
dialect supports it and are otherwise guarded by their version counters.
"""
from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import func, case

from stockledger.models import Company, Location, User, Item, StockBatch, StockStatus


class CompanyRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, company_id: int) -> Optional[Company]:
        return self.db.query(Company).filter(Company.id == company_id).first()

    def get_for_update(self, company_id: int) -> Optional[Company]:
        return self.db.query(Company).filter(
            Company.id == company_id
        ).with_for_update().populate_existing().first()


class LocationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, location_id: int, company_id: int = None) -> Optional[Location]:
        query = self.db.query(Location).filter(Location.id == location_id)
        if company_id:
            query = query.filter(Location.company_id == company_id)
        return query.first()


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()


class ItemRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, item_id: int, company_id: int = None) -> Optional[Item]:
        query = self.db.query(Item).filter(Item.id == item_id)
        if company_id:
            query = query.filter(Item.company_id == company_id)
        return query.first()

    def get_for_update(self, item_id: int, company_id: int = None) -> Optional[Item]:
        query = self.db.query(Item).filter(Item.id == item_id)
        if company_id:
            query = query.filter(Item.company_id == company_id)
        return query.with_for_update().populate_existing().first()

    def list_by_company(
        self,
        company_id: int = None,
        status: str = None,
        use_batch_system: bool = None
    ) -> List[Item]:
        query = self.db.query(Item)
        if company_id:
            query = query.filter(Item.company_id == company_id)
        if status:
            query = query.filter(Item.status == status)
        if use_batch_system is not None:
            query = query.filter(Item.use_batch_system == use_batch_system)
        return query.order_by(Item.name, Item.id).all()


class StockBatchRepository:
    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, company_id: int = None):
        query = self.db.query(StockBatch)
        if company_id:
            query = query.join(Item, Item.id == StockBatch.item_id).filter(Item.company_id == company_id)
        return query

    def get_by_id(self, batch_id: int, company_id: int = None) -> Optional[StockBatch]:
        return self._scoped(company_id).filter(StockBatch.id == batch_id).first()

    def get_for_update(self, batch_id: int, company_id: int = None) -> Optional[StockBatch]:
        return self._scoped(company_id).filter(
            StockBatch.id == batch_id
        ).with_for_update(of=StockBatch).populate_existing().first()

    def list(
        self,
        company_id: int = None,
        item_id: int = None,
        location_id: int = None,
        status: str = None
    ) -> List[StockBatch]:
        query = self._scoped(company_id)
        if item_id:
            query = query.filter(StockBatch.item_id == item_id)
        if location_id:
            query = query.filter(StockBatch.location_id == location_id)
        if status:
            query = query.filter(StockBatch.status == status)
        return query.order_by(StockBatch.created_at.desc(), StockBatch.id.desc()).all()

    def count_for_item(self, item_id: int) -> int:
        return self.db.query(func.count(StockBatch.id)).filter(StockBatch.item_id == item_id).scalar() or 0

    def add(self, batch: StockBatch) -> StockBatch:
        self.db.add(batch)
        self.db.flush()
        return batch

    def delete(self, batch: StockBatch) -> None:
        self.db.delete(batch)
        self.db.flush()

    def find_equivalent(
        self,
        item_id: int,
        location_id: Optional[int],
        status: str,
        cost_per_unit_usd: Decimal,
        freight_cost_usd: Decimal
    ) -> Optional[StockBatch]:
        """Oldest batch sharing the consolidation key, locked for update"""
        query = self.db.query(StockBatch).filter(
            StockBatch.item_id == item_id,
            StockBatch.status == status,
            StockBatch.cost_per_unit_usd == cost_per_unit_usd,
            StockBatch.freight_cost_usd == freight_cost_usd,
        )
        if location_id is None:
            query = query.filter(StockBatch.location_id.is_(None))
        else:
            query = query.filter(StockBatch.location_id == location_id)
        return query.order_by(StockBatch.created_at, StockBatch.id).with_for_update().first()

    def relocate_batch(self, batch: StockBatch, location_id: int) -> StockBatch:
        batch.location_id = location_id
        batch.updated_at = datetime.utcnow()
        self.db.flush()
        return batch

    def split_batch(
        self,
        batch: StockBatch,
        quantity: int,
        location_id: Optional[int],
        status: str = None,
        committed_share: Decimal = Decimal("0.00")
    ) -> StockBatch:
        """
        Move `quantity` units of `batch` into a new batch at `location_id`.

        The new batch clones every attribute of the source except id, quantity,
        location and (optionally) status; the committed cost share moves with it.
        """
        batch.quantity = batch.quantity - quantity
        batch.committed_cost_usd = batch.committed_cost_usd - committed_share
        batch.updated_at = datetime.utcnow()

        new_batch = StockBatch(
            item_id=batch.item_id,
            quantity=quantity,
            original_quantity=quantity,
            status=status or batch.status,
            cost_per_unit_usd=batch.cost_per_unit_usd,
            freight_cost_usd=batch.freight_cost_usd,
            committed_cost_usd=committed_share,
            order_date=batch.order_date,
            expected_arrival=batch.expected_arrival,
            arrived_date=batch.arrived_date,
            order_number=batch.order_number,
            notes=batch.notes,
            location_id=location_id,
            assigned_user_id=batch.assigned_user_id,
        )
        self.db.add(new_batch)
        self.db.flush()
        return new_batch

    def sum_live_quantity(self, item_id: int) -> int:
        """Units on hand: every batch except Sold ones"""
        total = self.db.query(func.coalesce(func.sum(StockBatch.quantity), 0)).filter(
            StockBatch.item_id == item_id,
            StockBatch.status != StockStatus.SOLD.value
        ).scalar()
        return int(total or 0)

    def live_quantity_by_location(self, item_id: int) -> Dict[Optional[int], int]:
        rows = self.db.query(
            StockBatch.location_id, func.sum(StockBatch.quantity)
        ).filter(
            StockBatch.item_id == item_id,
            StockBatch.status != StockStatus.SOLD.value
        ).group_by(StockBatch.location_id).all()
        return {location_id: int(total or 0) for location_id, total in rows}

    def live_batches_fifo(self, item_id: int, preferred_location_id: int = None) -> List[StockBatch]:
        """Live batches holding stock, oldest first; a preferred location goes first"""
        query = self.db.query(StockBatch).filter(
            StockBatch.item_id == item_id,
            StockBatch.status != StockStatus.SOLD.value,
            StockBatch.quantity > 0
        )
        ordering = [StockBatch.created_at, StockBatch.id]
        if preferred_location_id:
            ordering.insert(0, case((StockBatch.location_id == preferred_location_id, 0), else_=1))
        return query.order_by(*ordering).with_for_update().all()
