# authcore/adapters/__init__.py
