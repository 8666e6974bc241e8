# authcore/domain/models/__init__.py
