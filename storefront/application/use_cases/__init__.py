"""
Use cases exposed to the view layer
"""

from .shopper_session_use_case import LoginResult, ShopperSessionUseCase

__all__ = ["LoginResult", "ShopperSessionUseCase"]
