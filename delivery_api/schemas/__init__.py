"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by feature slice (delivery, catalog, credits, billing) and
also include common reusable models such as the standard error envelope.
"""

from .common import MessageResponse  # noqa: F401
