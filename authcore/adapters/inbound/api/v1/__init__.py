# authcore/adapters/inbound/api/v1/__init__.py
