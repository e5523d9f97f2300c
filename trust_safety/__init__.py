# trust_safety/__init__.py
"""Движок модерации Trust & Safety для маркетплейса заказов."""

__version__ = "1.0.0"
