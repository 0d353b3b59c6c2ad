"""
ERP database models.

- Master data (suppliers, products, locations)
- Purchase orders, their items and landed costs
- Goods received notes and their items
- Inventory batches, stock levels and movements
- Allocation strategies and executions
- Audit logs and document sequences
"""

from erp.models.base import Base
from erp.models.master_data import Supplier, Product, Location
from erp.models.purchasing import PurchaseOrder, PurchaseOrderItem, PurchaseOrderCost
from erp.models.receiving import GoodsReceivedNote, GRNItem
from erp.models.inventory import InventoryBatch, StockLevel, StockMovement
from erp.models.allocation import AllocationStrategy, AllocationExecution, AllocationBatchDetail
from erp.models.audit import AuditLog
from erp.models.sequence import DocumentSequence

__all__ = [
    "Base",
    "Supplier",
    "Product",
    "Location",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "PurchaseOrderCost",
    "GoodsReceivedNote",
    "GRNItem",
    "InventoryBatch",
    "StockLevel",
    "StockMovement",
    "AllocationStrategy",
    "AllocationExecution",
    "AllocationBatchDetail",
    "AuditLog",
    "DocumentSequence",
]
