from .catalog import Branch, Department, Cycle, Item, BranchItemPrice
from .members import Member
from .orders import Order, OrderLine, AuditLog
from .settings import AppSetting

__all__ = [
    'Branch', 'Department', 'Cycle', 'Item', 'BranchItemPrice',
    'Member',
    'Order', 'OrderLine', 'AuditLog',
    'AppSetting',
]
