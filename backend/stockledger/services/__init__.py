# Services Package
from stockledger.services.errors import (
    LedgerError, NotFoundError, ValidationFailedError, InsufficientFundsError,
    ConsistencyConflictError, InternalError
)
from stockledger.services.audit_service import AuditService, AuditAction
from stockledger.services.cash_flow_service import CashFlowService
from stockledger.services.validation_service import ValidationService
from stockledger.services.consolidation_service import ConsolidationService
from stockledger.services.transfer_service import TransferService, TransferOutcome
from stockledger.services.reconciliation_service import ReconciliationService
from stockledger.services.batch_service import BatchService, CreateOutcome
from stockledger.services.item_service import ItemService
from stockledger.services.stock_action_service import StockActionService
from stockledger.services.consistency_service import ConsistencyService

__all__ = [
    'LedgerError',
    'NotFoundError',
    'ValidationFailedError',
    'InsufficientFundsError',
    'ConsistencyConflictError',
    'InternalError',
    'AuditService',
    'AuditAction',
    'CashFlowService',
    'ValidationService',
    'ConsolidationService',
    'TransferService',
    'TransferOutcome',
    'ReconciliationService',
    'BatchService',
    'CreateOutcome',
    'ItemService',
    'StockActionService',
    'ConsistencyService',
]
