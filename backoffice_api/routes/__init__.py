"""
Route modules, one APIRouter per resource. All are mounted under /api.
"""

from backoffice_api.routes import (
    accounts,
    audit_log,
    clients,
    documents,
    institutions,
    shop_clients,
    shops,
)

ROUTERS = [
    clients.router,
    accounts.router,
    shops.router,
    shop_clients.router,
    documents.router,
    institutions.router,
    audit_log.router,
]

__all__ = ['ROUTERS']
