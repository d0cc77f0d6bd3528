from .auth import User, RoleChangeEvent
from .catalog import Category, Design, Product, Stock
from .orders import Order, OrderItem, Payment
from .returns import Return
from .communications import Notification
from .reports import Report

__all__ = [
    'User', 'RoleChangeEvent',
    'Category', 'Design', 'Product', 'Stock',
    'Order', 'OrderItem', 'Payment',
    'Return',
    'Notification',
    'Report',
]
