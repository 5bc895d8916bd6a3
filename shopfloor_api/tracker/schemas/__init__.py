"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by area (production records, scanner calls, dashboard) and
also include common reusable models such as the error envelope.
"""

from .common import MessageResponse  # noqa: F401
