# API v1 Package
from stockledger.api.v1 import batches, items, inventory

__all__ = [
    'batches',
    'items',
    'inventory',
]
