# authcore/adapters/outbound/http/__init__.py
