"""
Infrastructure layer

HTTP access, durable storage, caching, logging and shared utilities.
"""
