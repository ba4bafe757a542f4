from .tenancy import Store
from .inventory import Product, Inventory, StockMovement
from .customers import CustomerDiscount, Customer
from .promotions import Discount
from .sales import PaymentMethod, SalesTransaction, SalesItem, SalesPayment
from .documents import SalesReturn, ReturnItem, StockTransfer, TransferItem

__all__ = [
    'Store',
    'Product', 'Inventory', 'StockMovement',
    'CustomerDiscount', 'Customer',
    'Discount',
    'PaymentMethod', 'SalesTransaction', 'SalesItem', 'SalesPayment',
    'SalesReturn', 'ReturnItem', 'StockTransfer', 'TransferItem',
]
