"""
Travel Log Backend — Application Package Initializer
====================================================

What: Marks the `travel_log` directory as a Python package.
Who:  Used by uvicorn, Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Submission Pipeline (Services)    │  ← auth, throttle, ingest,
    │                                     │    validate, persist
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes turn an HTTP request into explicit pipeline inputs; the services
    never touch the Starlette request object.
"""

__version__ = "1.0.0"
