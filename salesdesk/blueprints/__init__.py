"""
Blueprint packages of the SalesDesk API.

Each package exposes its Blueprint object from routes.py.
"""
