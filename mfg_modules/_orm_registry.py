"""
Module ORM Registry (``mfg_modules._orm_registry``).

Imports the kernel models and every ``mfg_modules.*.orm`` module so that
``Base.metadata`` holds all tables before ``create_all()`` runs.  Scripts,
``mfg_kernel.db.engine.create_tables()`` and ``tests/conftest.py`` all go
through here.
"""


def import_all_orm_models() -> None:
    """Idempotent; repeated calls are harmless."""
    # Kernel tables first: module tables reference items and mrp_runs
    import mfg_kernel.models  # noqa: F401
    import mfg_kernel.services.sequence_service  # noqa: F401
    import mfg_modules.production.orm  # noqa: F401
    import mfg_modules.purchasing.orm  # noqa: F401
