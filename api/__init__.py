"""
HTTP API of the nursery storefront.

One FastAPI application serves:
- Storefront endpoints (catalog, cart, checkout, back-in-stock signup)
- The RPC endpoints for cart discounts, coupon checks and pickup slots
- Admin endpoints (promotions, shipping, pickup, email templates, orders, reports)
"""

from api.main import app, reset_api_state

__all__ = ["app", "reset_api_state"]
