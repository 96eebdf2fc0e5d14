"""
HTTP infrastructure

Authenticated access to the commerce API.
"""

from .request_gateway import RequestGateway, TokenSource, infer_token_kind

__all__ = ["RequestGateway", "TokenSource", "infer_token_kind"]
