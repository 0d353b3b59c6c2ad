"""
ERP API routes.

Provides REST API endpoints for:
- Purchase orders and their landed costs
- Goods received notes and PO-GRN validation
- Inventory batches, stock levels, movements and transfers
- Inventory costing analysis
- Smart allocation
- Audit trail
"""

from erp.api.allocation import router as allocation_router
from erp.api.audit import router as audit_router
from erp.api.costing import router as costing_router
from erp.api.grns import router as grns_router
from erp.api.inventory import router as inventory_router
from erp.api.purchase_orders import router as purchase_orders_router

__all__ = [
    "purchase_orders_router",
    "grns_router",
    "inventory_router",
    "costing_router",
    "allocation_router",
    "audit_router",
]
