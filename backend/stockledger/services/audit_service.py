"""
Audit trail for ledger mutations

Entries are written in the caller's transaction, so an operation that rolls
back leaves no entry behind.
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, List, Dict
from datetime import date
import json
import logging

from stockledger.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    # batches
    CONSOLIDATE = "CONSOLIDATE"
    TRANSFER = "TRANSFER"
    SPLIT = "SPLIT"

    # items
    RECONCILE = "RECONCILE"
    STOCK_ADDED = "STOCK_ADDED"
    STOCK_SOLD = "STOCK_SOLD"
    STOCK_REMOVED = "STOCK_REMOVED"


def _dump(values: Optional[Dict]) -> Optional[str]:
    # Decimal and datetime values are stored as their string form
    if not values:
        return None
    return json.dumps(values, default=str, sort_keys=True)


def entry_values(entry: AuditLog) -> Dict:
    """Old and new values of an entry, decoded"""
    return {
        "old": json.loads(entry.old_values) if entry.old_values else None,
        "new": json.loads(entry.new_values) if entry.new_values else None,
    }


class AuditService:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict] = None,
        new_values: Optional[Dict] = None,
        actor=None,
        company_id: Optional[int] = None,
        status: str = "success",
        error_message: Optional[str] = None
    ) -> Optional[AuditLog]:
        """
        Record one mutation. `actor` is the User behind the request, or None
        for scripts and maintenance jobs. Returns None when the entry could
        not be written; the failure is logged, not raised.
        """
        entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            old_values=_dump(old_values),
            new_values=_dump(new_values),
            user_id=getattr(actor, "id", None),
            username=getattr(actor, "username", None),
            company_id=company_id,
            status=status,
            error_message=error_message
        )
        try:
            # a failed entry rolls back to here; the caller's transaction stays usable
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Could not write audit entry {action} {resource_type}({resource_id}): {e}")
            return None

        logger.info(
            f"Audit: {action} {resource_type}(id={resource_id}) "
            f"by {entry.username or 'system'} company={company_id}"
        )
        return entry

    def get_by_company(
        self,
        company_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.company_id == company_id)
        if start_date:
            query = query.filter(AuditLog.timestamp >= start_date)
        if end_date:
            query = query.filter(AuditLog.timestamp < end_date)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        return query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).offset(offset).limit(limit).all()

    def get_by_resource(self, resource_type: str, resource_id: int, limit: int = 50) -> List[AuditLog]:
        """History of one batch or item, newest first"""
        return self.db.query(AuditLog).filter(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id
        ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).all()
