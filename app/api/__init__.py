# app/api/__init__.py
"""
HTTP layer.

The versioned routers live under ``app.api.v1``; shared request
dependencies and the result-to-response mapping live here.
"""
