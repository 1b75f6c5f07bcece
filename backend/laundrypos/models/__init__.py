from .tenancy import Store
from .auth import User, SessionToken
from .customers import Customer
from .products import Product
from .promotions import Promotion
from .orders import Order, OrderItem, OrderStatusHistory
from .security import SecurityEvent, AuditLog

__all__ = [
    'Store',
    'User', 'SessionToken',
    'Customer',
    'Product',
    'Promotion',
    'Order', 'OrderItem', 'OrderStatusHistory',
    'SecurityEvent', 'AuditLog',
]
