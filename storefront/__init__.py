"""
Storefront session core

Token lifecycle, guest/customer cart reconciliation and the authenticated
request gateway used by a headless commerce storefront.
"""

__version__ = "0.1.0"
