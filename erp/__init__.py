"""
ERP Service

REST API for the procurement and inventory side of the ERP:
- Purchase orders and goods received notes (GRNs)
- PO-GRN validation and receipt completion tracking
- Batch inventory, stock levels and transfers
- Landed cost allocation and cost analysis
- Smart batch allocation for estimation, manufacturing and sales
- Audit trail
"""

__version__ = "1.0.0"

from erp.config import ErpConfig

__all__ = ["ErpConfig"]
