"""
Core business logic components.

- Credential verification (PBKDF2) and rate limiting
- Origin allow-listing and CORS headers
- Auth gate, request router and storage gateway
- KPI aggregation and pipeline note sync
- Metrics collection
"""
