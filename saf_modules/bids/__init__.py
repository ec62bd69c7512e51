"""
Bids Module.

Producer bids against quote requests: capacity planning, the approval
gate, submission, award and revision.
"""

from saf_modules.bids.service import BidService

__all__ = ["BidService"]
