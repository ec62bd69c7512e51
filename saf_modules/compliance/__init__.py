"""
Compliance Module.

Producer certificates, plant certification rollup and compliance
documents with typed metadata.
"""

from saf_modules.compliance.service import ComplianceService

__all__ = ["ComplianceService"]
