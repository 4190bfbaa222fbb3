"""
Travel Log Backend — API Routes Package
=========================================

Route Inventory:
    - logs.py:    POST /api/logs   (create entry, optional image upload)
                  GET  /api/logs   (list entries)
    - health.py:  GET  /health     (store connectivity)

Uploaded images are served by a StaticFiles mount at /uploads (see main.py).
"""
