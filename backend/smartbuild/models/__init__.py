from .tenancy import Organization
from .clients import Client
from .estimates import Estimate, EstimateItem
from .invoices import Invoice, InvoiceItem

__all__ = [
    'Organization',
    'Client',
    'Estimate', 'EstimateItem',
    'Invoice', 'InvoiceItem',
]
