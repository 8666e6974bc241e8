# authcore/domain/services/__init__.py
