"""Persistence adapters.

Repositories are consumed as black boxes by route handlers; the in-memory
backend stands in for the relational database in development and tests.
"""
