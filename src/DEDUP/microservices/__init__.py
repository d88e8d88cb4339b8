"""
Microservices for the deduplication system.

Modules:
    api: FastAPI REST API for CSV/Excel upload and deduplication
"""
