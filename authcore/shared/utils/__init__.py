# authcore/shared/utils/__init__.py
