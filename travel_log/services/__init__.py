# Services package init
"""
Travel Log Backend — Services Layer
=====================================

What:  Business logic between routes (HTTP) and the database (persistence).
How:   Each stage of the write pipeline is one service with explicit inputs;
       SubmissionPipeline wires them together. Routes never reach past it.

Service Inventory:
    - Authenticator:      shared-secret check (auth_service.py)
    - RateLimiter:        per-address fixed window over the store (rate_limiter.py)
    - FileService:        managed upload namespace (file_service.py)
    - MultipartIngestor:  JSON / streaming multipart body ingestion (ingest_service.py)
    - FieldValidator:     presence, type and range checks (validation_service.py)
    - LogEntryService:    insert and list entries (log_entry_service.py)
    - SubmissionPipeline: auth → throttle → ingest → validate → persist (pipeline.py)
"""
