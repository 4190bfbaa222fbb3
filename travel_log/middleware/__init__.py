"""
Travel Log Backend — Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [CORS] → Route Handler

    1. Request ID: correlation ID for logs and error bodies
    2. Logging: method, path, status and duration per request
    3. CORS: FastAPI's CORSMiddleware (handles preflight)

Throttling is not a middleware: it only applies to POST /api/logs and runs
inside the submission pipeline, after authentication.
"""
