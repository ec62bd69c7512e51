"""
RFQ Module (``saf_modules.rfq``).

Buyers' quote requests: lifecycle (open, watching, closed, awarded) and the
advisory fit score against a producer's declared capability.
"""

from saf_modules.rfq.service import RfqService

__all__ = ["RfqService"]
