# authcore/shared/__init__.py
