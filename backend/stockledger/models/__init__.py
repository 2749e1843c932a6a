from .catalog import Product, PRODUCT_FIELDS, SEARCH_COLUMNS, normalize_code, normalize_batch
from .purchases import PurchaseInvoice, PurchaseInvoiceLine, PurchaseReturn, PurchaseReturnLine, line_key
from .sales import SalesInvoice, InvoiceCounter

__all__ = [
    'Product', 'PRODUCT_FIELDS', 'SEARCH_COLUMNS', 'normalize_code', 'normalize_batch',
    'PurchaseInvoice', 'PurchaseInvoiceLine', 'PurchaseReturn', 'PurchaseReturnLine', 'line_key',
    'SalesInvoice', 'InvoiceCounter',
]
