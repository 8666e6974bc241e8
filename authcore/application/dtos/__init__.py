# authcore/application/dtos/__init__.py
