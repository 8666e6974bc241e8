# authcore/adapters/configuration/__init__.py
