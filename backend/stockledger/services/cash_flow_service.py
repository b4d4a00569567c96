"""
Cash Flow Service - company balance movements caused by the stock ledger

All writers to a company's cash balances go through this class. Each movement
reads the company row with a row lock and writes it back under the company's
version counter, so two concurrent commitments cannot both spend the same
balance.
"""
from typing import Dict, Optional
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy.orm import Session
import logging

from stockledger.core.config import settings
from stockledger.models import Company, Item, StockBatch, StockStatus
from stockledger.services.errors import InsufficientFundsError, NotFoundError
from stockledger.services.repositories import CompanyRepository

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def lot_cost(cost_per_unit_usd, quantity, freight_cost_usd) -> Decimal:
    """(cost per unit x quantity) + freight, freight being a lot total"""
    return to_money(to_money(cost_per_unit_usd) * int(quantity or 0) + to_money(freight_cost_usd))


def usd_to_srd(amount_usd) -> Decimal:
    return to_money(to_money(amount_usd) * settings.SRD_PER_USD)


class CashFlowService:
    def __init__(self, db: Session):
        self.db = db
        self.companies = CompanyRepository(db)

    def _lock_company(self, company_id: int) -> Company:
        company = self.companies.get_for_update(company_id)
        if not company:
            raise NotFoundError("Company", company_id)
        return company

    # ==================== BALANCE MOVEMENTS ====================

    def ensure_funds(self, company_id: int, amount: Decimal, currency: str = "USD") -> Company:
        """Lock the company and check it can cover `amount` without moving cash"""
        company = self._lock_company(company_id)
        available = to_money(company.cash_balance_usd if currency == "USD" else company.cash_balance_srd)
        if available < to_money(amount):
            logger.info(
                f"Insufficient {currency} funds for company {company_id}: "
                f"required={to_money(amount)} available={available}"
            )
            raise InsufficientFundsError(to_money(amount), available, currency)
        return company

    def debit_usd(self, company_id: int, amount, reason: str = "") -> Decimal:
        """Take `amount` USD from the company or raise without touching anything"""
        amount = to_money(amount)
        if amount <= ZERO:
            return ZERO
        company = self.ensure_funds(company_id, amount, "USD")
        company.cash_balance_usd = to_money(company.cash_balance_usd) - amount
        self.db.flush()
        logger.info(f"Debited USD {amount} from company {company_id} ({reason})")
        return amount

    def credit_usd(self, company_id: int, amount, reason: str = "") -> Decimal:
        amount = to_money(amount)
        if amount <= ZERO:
            return ZERO
        company = self._lock_company(company_id)
        company.cash_balance_usd = to_money(company.cash_balance_usd) + amount
        self.db.flush()
        logger.info(f"Credited USD {amount} to company {company_id} ({reason})")
        return amount

    def credit_srd(self, company_id: int, amount, reason: str = "") -> Decimal:
        amount = to_money(amount)
        if amount <= ZERO:
            return ZERO
        company = self._lock_company(company_id)
        company.cash_balance_srd = to_money(company.cash_balance_srd) + amount
        self.db.flush()
        logger.info(f"Credited SRD {amount} to company {company_id} ({reason})")
        return amount

    # ==================== BATCH COMMITMENTS ====================

    def commit_batch(self, batch: StockBatch, company_id: int, amount) -> Decimal:
        """Reserve `amount` USD against a batch"""
        debited = self.debit_usd(company_id, amount, reason=f"batch {batch.id} ordered")
        batch.committed_cost_usd = to_money(batch.committed_cost_usd) + debited
        return debited

    def release_batch(self, batch: StockBatch, company_id: int) -> Decimal:
        """Return whatever is still reserved against a batch"""
        committed = to_money(batch.committed_cost_usd)
        if committed <= ZERO:
            return ZERO
        refunded = self.credit_usd(company_id, committed, reason=f"batch {batch.id} released")
        batch.committed_cost_usd = ZERO
        return refunded

    def realize_batch(self, batch: StockBatch) -> Decimal:
        """The reserved cost has been spent on sold goods; nothing remains to refund"""
        realized = to_money(batch.committed_cost_usd)
        batch.committed_cost_usd = ZERO
        if realized > ZERO:
            logger.info(f"Realized USD {realized} committed against batch {batch.id}")
        return realized

    def reprice_batch(self, batch: StockBatch, company_id: int, old_cost: Decimal, new_cost: Decimal) -> Decimal:
        """
        Adjust an outstanding commitment after quantity/cost/freight edits.
        Returns the signed change in the reserved amount.
        """
        delta = to_money(new_cost) - to_money(old_cost)
        if delta > ZERO:
            return self.commit_batch(batch, company_id, delta)
        if delta < ZERO:
            refund = min(-delta, to_money(batch.committed_cost_usd))
            refunded = self.credit_usd(company_id, refund, reason=f"batch {batch.id} repriced")
            batch.committed_cost_usd = to_money(batch.committed_cost_usd) - refunded
            return -refunded
        return ZERO

    def split_commitment(self, batch: StockBatch, quantity: int) -> Decimal:
        """Share of a batch's commitment that travels with `quantity` of its units"""
        committed = to_money(batch.committed_cost_usd)
        if committed <= ZERO or not batch.quantity:
            return ZERO
        if quantity >= batch.quantity:
            return committed
        return to_money(committed * quantity / batch.quantity)

    # ==================== LEGACY ITEM COMMITMENTS ====================

    def apply_item_status_change(self, item: Item, changes: Dict, creating: bool = False) -> Decimal:
        """
        Item-level order commitment for items outside the batch system.

        Entering ToOrder debits (cost x quantity) + freight computed from the
        incoming values; leaving ToOrder refunds the same formula computed from
        the stored values. Returns the signed cash movement (negative = debit).
        """
        if changes.get("use_batch_system", item.use_batch_system):
            return ZERO

        old_status = None if creating else item.status
        new_status = changes.get("status") or item.status
        to_order = StockStatus.TO_ORDER.value

        if new_status == old_status:
            return ZERO

        if new_status == to_order:
            amount = lot_cost(
                changes.get("cost_per_unit_usd", item.cost_per_unit_usd),
                changes.get("quantity_in_stock", item.quantity_in_stock),
                changes.get("freight_cost_usd", item.freight_cost_usd),
            )
            return -self.debit_usd(item.company_id, amount, reason=f"item {item.id or item.name} to order")

        if old_status == to_order:
            amount = lot_cost(item.cost_per_unit_usd, item.quantity_in_stock, item.freight_cost_usd)
            return self.credit_usd(item.company_id, amount, reason=f"item {item.id} left to order")

        return ZERO

    def release_item_order(self, item: Item) -> Decimal:
        """Refund an outstanding legacy order when the item goes away"""
        if item.use_batch_system or item.status != StockStatus.TO_ORDER.value:
            return ZERO
        amount = lot_cost(item.cost_per_unit_usd, item.quantity_in_stock, item.freight_cost_usd)
        return self.credit_usd(item.company_id, amount, reason=f"item {item.id} removed")


def batch_commitment_summary(batch: StockBatch) -> Optional[Dict]:
    """Snapshot used in audit entries"""
    if batch is None:
        return None
    return {
        "status": batch.status,
        "quantity": batch.quantity,
        "cost_per_unit_usd": to_money(batch.cost_per_unit_usd),
        "freight_cost_usd": to_money(batch.freight_cost_usd),
        "committed_cost_usd": to_money(batch.committed_cost_usd),
    }
