"""
SAF Modules.

Thin orchestration layers over the SAF kernel and engines.  Each module
contains:
- ORM models (persistence of the frozen engine types)
- Workflows (state machines)
- Configuration schemas (built from ``CoreConfig``)
- A service facade owning the transaction boundary

Modules:
- Production: plants, production batches, the batch volume ledger
- RFQ: buyer quote requests and the advisory fit score
- Bids: capacity planning, approval gate, award and revision
- Contracts: materialized contracts, deliveries, invoicing, payment
- Compliance: certificates, plant certification, compliance documents
"""
