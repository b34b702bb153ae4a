"""
API route modules for the materials service.

This package contains subrouters for:
- Locations: storage hierarchy and utilization
- Materials: material master, valuations, lot selection and issue
- Lots: receipts, reservations, consumption, quality holds, splits, ledger
- MRP: demand feed, planning runs and requirement lifecycle
- Reports: CSV/XLSX/PDF exports

Routers are included from src.api.main (under the /api/v1 prefix).
"""
