"""
Module ORM Registry (``transfer_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before tables are created.

Usage
-----
``transfer_kernel.db.engine.create_tables()`` and ``tests/conftest.py``
call ``import_all_orm_models()``; repeated calls are harmless.
"""


def import_all_orm_models() -> None:
    """Import the kernel sequence table and every module ``orm`` module."""
    import transfer_kernel.services.sequence_service  # noqa: F401
    import transfer_modules.sto.orm  # noqa: F401
