"""
Production Module (``saf_modules.production``).

Responsibility
--------------
Plants and their declared capacity, logged production batches, and the
volume ledger that allocates batch capacity to contracts.

Architecture position
---------------------
**Modules layer** -- ORM models and a service facade; every ledger rule
lives in ``saf_engines.ledger``.

Invariants enforced
-------------------
* Conservation: allocated + available == volume on every saved batch.
* Batches are saved under optimistic ``row_version`` checks.
* A batch with allocations is never deleted.
"""

from saf_modules.production.service import ProductionService

__all__ = ["ProductionService"]
