from .tenancy import Tenant, TenantSettings
from .auth import User, SessionToken
from .inventory import Category, Supplier, Product
from .customers import Customer
from .sales import Transaction, TransactionItem

__all__ = [
    'Tenant', 'TenantSettings',
    'User', 'SessionToken',
    'Category', 'Supplier', 'Product',
    'Customer',
    'Transaction', 'TransactionItem',
]
