"""
Transfer Kernel - shared infrastructure for the stock transfer engine.

Provides:
- Typed, coded exceptions
- Structured JSON logging with context propagation
- SQLAlchemy declarative base and engine/session management
- Injectable clock and workflow value objects
- Locked-counter sequence allocation for document numbers
"""

__version__ = "0.1.0"
