"""Integration adapters for the CPQ REST API.

Keep these modules small and testable:
- No FastAPI request/response objects
- No operation catalogue concerns
- Pure IO + payload helpers
"""
