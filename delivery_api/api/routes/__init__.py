"""
API route modules.

This package contains subrouters for:
- Auth: login, register, logout, refresh, current user, password check
- Tenants: business signup and current tenant
- Delivery: zones, checkout validation, order status, courier location, notification runs
- Notifications: in-app notification inbox
- Catalog: products, deduplicating import, availability rules
- Credits: balance, costs, packages, consumption, Stripe checkout, admin adjustment
- Billing: Stripe webhook
- Reports: CSV/XLSX/PDF exports

Routers are included from delivery_api.api.main (under the /api/v1 prefix).
"""
