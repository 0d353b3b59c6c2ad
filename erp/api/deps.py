"""
Shared FastAPI dependencies.

Authentication happens upstream of this service; the acting user arrives in
the ``X-User-Id`` header and is only recorded, never verified.
"""

from typing import Optional

from fastapi import Header, Request

from erp.services.audit import RequestContext


async def get_request_context(
    request: Request,
    x_user_id: Optional[int] = Header(None),
    x_request_id: Optional[str] = Header(None),
    user_agent: Optional[str] = Header(None),
) -> RequestContext:
    """
    Build the audit context of the current request.

    Args:
        request: Incoming request (client address)
        x_user_id: Acting user, as forwarded by the gateway
        x_request_id: Correlation id for tracing
        user_agent: Client user agent

    Returns:
        RequestContext for audit entries
    """
    return RequestContext(
        user_id=x_user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
        request_id=x_request_id,
    )
