"""
Module ORM Registry (``payroll_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.

Architecture position
---------------------
**Modules layer** -- utility.  Called by ``payroll_kernel.db.engine.create_tables``
and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``payroll_modules.*.orm`` module.

    This function is idempotent -- repeated calls are harmless.
    """
    import payroll_kernel.models  # noqa: F401
    import payroll_modules.sources.orm  # noqa: F401
    import payroll_modules.execution.orm  # noqa: F401
