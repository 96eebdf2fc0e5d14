"""
Application Layer

Use cases that drive the session services on behalf of a view.
"""
