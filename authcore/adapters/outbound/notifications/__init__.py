# authcore/adapters/outbound/notifications/__init__.py
