"""
API route modules for the shop-floor tracker.

This package contains subrouters for:
- Production: production orders, travel sheet generation, order risk
- QR Scanner: checkpoint scans and operation completion
- Dashboard: production dashboard rows and counters

Routers are included from tracker.api.main (under the /api/v1 prefix).
"""
