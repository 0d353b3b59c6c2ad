"""
Business logic of the ERP service.

Route handlers stay thin: they parse the request, call one of these modules
and shape the response. Each write operation runs in the caller's session and
commits once at the end.
"""
