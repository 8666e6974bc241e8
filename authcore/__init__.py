# authcore/__init__.py

"""
Session and authentication core.

Issues and rotates JWT session tokens backed by a session table, enforces
account lockout and the per-user device cap, and guards every incoming
request according to the route classification table.
"""

__version__ = "1.0.0"
