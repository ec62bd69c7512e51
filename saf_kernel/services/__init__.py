"""Imperative shell infrastructure: repository and service base class."""

from saf_kernel.services.base import BaseService
from saf_kernel.services.repository import Repository

__all__ = ["BaseService", "Repository"]
