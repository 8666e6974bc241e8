# authcore/application/ports/__init__.py
