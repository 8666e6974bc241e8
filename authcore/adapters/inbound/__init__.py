# authcore/adapters/inbound/__init__.py
