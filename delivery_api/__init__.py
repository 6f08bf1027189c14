"""Multi-tenant delivery platform API: zones, courier notifications, catalog import and credit billing."""
