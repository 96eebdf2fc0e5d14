"""
Services package

Token lifecycle, cart reconciliation, catalog lookups and the background
cart refresh.
"""
