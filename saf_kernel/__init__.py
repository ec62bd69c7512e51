"""
SAF Kernel - shared infrastructure for the commitment ledger.

- Typed exceptions with machine-readable codes
- Structured JSON logging
- Injectable clock and operation results
- Workflow state machine types
- SQLAlchemy base, engine, repository, and service base class
"""

__version__ = "0.1.0"
