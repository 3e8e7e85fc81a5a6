from .businesses import Business
from .devices import DeviceRegistry, BusinessIntegration, Wlan, MacAclEntry
from .tokens import TokenPackageConfig, WifiToken, TokenSale, ConnectedClientProjection
from .ledger import ExpenseAccount, ExpenseAccountDeposit, ExpenseAccountPayment

__all__ = [
    'Business',
    'DeviceRegistry', 'BusinessIntegration', 'Wlan', 'MacAclEntry',
    'TokenPackageConfig', 'WifiToken', 'TokenSale', 'ConnectedClientProjection',
    'ExpenseAccount', 'ExpenseAccountDeposit', 'ExpenseAccountPayment',
]
