"""
Domain exceptions for the ERP service.

Services raise these; ``erp.exception_handlers`` maps them to HTTP responses.
"""

from typing import Any, Optional

from fastapi import status


class ErpError(Exception):
    """Base class for all ERP domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_response(self) -> dict:
        if self.detail is None:
            return {"detail": self.message}
        return {"detail": self.message, "errors": self.detail}


class NotFoundError(ErpError):
    """Referenced record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class ConflictError(ErpError):
    """Operation conflicts with the current state of a record."""

    status_code = status.HTTP_409_CONFLICT


class InsufficientStockError(ConflictError):
    """Not enough available batch quantity to satisfy a request."""

    def __init__(self, product_id: int, location_id: int, requested: Any, available: Any):
        super().__init__(
            f"Insufficient stock for product {product_id} at location {location_id}. "
            f"Requested: {requested}, Available: {available}"
        )
        self.product_id = product_id
        self.location_id = location_id


class BusinessRuleError(ErpError):
    """Request is well-formed but violates a business rule."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ValidationFailedError(BusinessRuleError):
    """A document failed validation; ``detail`` carries the full result."""

    def __init__(self, message: str, result: dict):
        super().__init__(message, detail=result)
        self.result = result

    def to_response(self) -> dict:
        return {"detail": self.message, "validation": self.result}
