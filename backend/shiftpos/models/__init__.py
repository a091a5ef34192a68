from .catalog import Product
from .shifts import Shift
from .sales import Sale, SaleItem
from .settings import StoreSetting
from .audit import AuditEvent
from .expenses import Expense

__all__ = [
    'Product',
    'Shift',
    'Sale', 'SaleItem',
    'StoreSetting',
    'AuditEvent',
    'Expense',
]
