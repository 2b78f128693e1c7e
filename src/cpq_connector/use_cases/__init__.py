"""Use-case level logic.

These modules map (resource, operation) pairs onto calls made through the
integrations layer. They should be:
- table driven
- unit-testable
- free of web/framework code
"""
