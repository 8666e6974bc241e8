# authcore/application/__init__.py
