from .catalog import Product
from .orders import Order, OrderDetail, Payment
from .accounts import User, TransactionHistory

__all__ = [
    'Product',
    'Order', 'OrderDetail', 'Payment',
    'User', 'TransactionHistory',
]
