from .auth import User, SessionToken
from .inventory import InventoryItem
from .orders import Order
from .cart import CartItem, WishlistItem
from .tax import TaxRate

__all__ = [
    'User', 'SessionToken',
    'InventoryItem',
    'Order',
    'CartItem', 'WishlistItem',
    'TaxRate',
]
