from .users import User, SessionToken
from .products import Category, Product, ProductBatch, ProductImage, PriceHistoryEntry
from .inventory import InventoryMovement
from .customers import Customer, CustomerCategory
from .orders import Order, OrderLineItem, OrderBatchUsage

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'ProductBatch', 'ProductImage', 'PriceHistoryEntry',
    'InventoryMovement',
    'Customer', 'CustomerCategory',
    'Order', 'OrderLineItem', 'OrderBatchUsage',
]
