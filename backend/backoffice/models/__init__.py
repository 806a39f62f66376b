from .catalog import Product, ProductPresentation
from .stock import StockBatch, StockMovement
from .sales import Sale, SaleItem
from .cash import CashBox, CashMovement
from .fiscal import FiscalDocument, Annulment

__all__ = [
    'Product', 'ProductPresentation',
    'StockBatch', 'StockMovement',
    'Sale', 'SaleItem',
    'CashBox', 'CashMovement',
    'FiscalDocument', 'Annulment',
]
