from .reconciliation import TransitionRecord, ReconciliationIntent, AdjustmentRecord
from .stock import StockMovement

__all__ = [
    'TransitionRecord', 'ReconciliationIntent', 'AdjustmentRecord',
    'StockMovement',
]
