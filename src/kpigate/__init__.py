"""
KPIGate - Authenticated KPI dashboard API

A FastAPI service that verifies dashboard passwords, rate-limits and
origin-checks callers, and exposes whitelisted access to the dashboard
tables plus an aggregated KPI snapshot.
"""

__version__ = "0.1.0"
