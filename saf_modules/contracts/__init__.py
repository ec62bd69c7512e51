"""
Contracts Module.

Supply contracts materialized from won bids, their delivery schedules,
and settlement through invoicing and payment.
"""

from saf_modules.contracts.service import ContractService

__all__ = ["ContractService"]
