"""Payments services package."""

from .zarinpal import ZarinpalService

__all__ = ["ZarinpalService"]
