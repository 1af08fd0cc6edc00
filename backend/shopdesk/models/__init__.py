from .auth import User, SessionToken
from .security import SecurityEvent
from .customers import Client
from .inventory import Product, Purchase
from .sales import Sale, SaleLine, Installment
from .registers import CashRegister, CashTransaction

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'Client',
    'Product', 'Purchase',
    'Sale', 'SaleLine', 'Installment',
    'CashRegister', 'CashTransaction',
]
