"""
Core application utilities for settings, errors, logging and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- The tracker error taxonomy
- Logging configuration with correlation/station context
- Dependency helpers (DB session, domain services)
"""
