# authcore/adapters/outbound/__init__.py
