"""
Module ORM Registry (``saf_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  ``saf_kernel.db.engine.create_tables`` calls
``import_all_orm_models`` itself, so callers never get a partial schema.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``saf_modules``
packages only.
"""


def import_all_orm_models() -> None:
    """Import every ``saf_modules.*.orm`` module to register ORM models.

    Order follows the foreign keys: quote requests before bids, bids
    before contracts.  Repeated calls are harmless.
    """
    # fmt: off
    import saf_modules.production.orm  # noqa: F401
    import saf_modules.rfq.orm  # noqa: F401
    import saf_modules.bids.orm  # noqa: F401
    import saf_modules.contracts.orm  # noqa: F401
    import saf_modules.compliance.orm  # noqa: F401
    # fmt: on
