"""
Core application utilities for settings and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- Dependency helpers (tenant extraction, tenant-scoped DB session, role checks)
- Domain exceptions mapped to the error envelope
- Logging setup with correlation and tenant context
- Password hashing, strength rules and JWT helpers
"""
