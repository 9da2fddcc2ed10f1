"""
Per-domain repository modules for database access.

Repository functions add and flush; the calling endpoint owns the commit so a
bulk request is applied as one transaction.
"""
