from .catalog import CachedProduct, CachedCustomer
from .orders import PosOrder, PosOrderLine
from .inventory import StockAdjustment
from .settings import PosSettings

__all__ = [
    'CachedProduct', 'CachedCustomer',
    'PosOrder', 'PosOrderLine',
    'StockAdjustment',
    'PosSettings',
]
