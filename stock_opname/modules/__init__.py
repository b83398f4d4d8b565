# modules/__init__.py
