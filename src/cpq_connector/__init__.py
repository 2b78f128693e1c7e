"""ConnectWise CPQ (Sell) connector.

Exposes the CPQ REST API resources (quotes, quote items, customers, tabs,
terms, recurring revenue, tax codes, templates, users) as discrete operations.
"""

__version__ = "0.1.0"
