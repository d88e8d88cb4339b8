"""
Identifier upload and deduplication service.

Accepts CSV/Excel uploads, extracts numeric identifiers, checks them against a
persistent store of known identifiers, records the new ones and returns
downloadable "new" and "duplicate" files.
"""

__version__ = "0.1.0"
