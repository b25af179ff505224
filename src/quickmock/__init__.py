"""
QuickMock

Describe a fake HTTP API in a route file and serve it instantly, with
templated responses, stateful CRUD resources, fault injection and
runtime-adjustable behaviour.
"""

__version__ = '1.0.0'
