"""
Stock consistency check

Compares every batch-mode item's quantity_in_stock with the sum of its live
batches and reports balance and location problems. With --fix, mismatched
items are reconciled and the changes committed.

    python check_consistency.py [--company ID] [--fix]
"""
import argparse
import logging
import sys

from stockledger.core.database import init_db, session_scope
from stockledger.services.consistency_service import ConsistencyService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check stock ledger consistency")
    parser.add_argument("--company", type=int, default=None, help="Only check this company")
    parser.add_argument("--fix", action="store_true", help="Reconcile mismatched items")
    args = parser.parse_args(argv)

    init_db()
    with session_scope() as db:
        report = ConsistencyService(db).check_all(args.company, fix=args.fix)
    if args.fix:
        logger.info("Reconciled items committed")

    print("=" * 60)
    print("Stock consistency report")
    print("=" * 60)
    for result in report["items"]:
        marker = "✓" if result["valid"] else ("~" if result["fixed"] else "✗")
        print(
            f"{marker} {result['item_name']} (id={result['item_id']}): "
            f"item={result['item_quantity']} batches={result['batch_total']} "
            f"({result['batch_count']} batches) - {result['message']}"
        )
    for warning in report["warnings"]:
        print(f"! {warning}")
    for error in report["errors"]:
        print(f"✗ {error}")

    print("=" * 60)
    print("Consistent" if report["valid"] else "Inconsistencies found")
    return 0 if report["valid"] else 1


if __name__ == "__main__":
    sys.exit(main())
