# trust_safety/web/__init__.py
from trust_safety.web.app import create_app, main

__all__ = ["create_app", "main"]
