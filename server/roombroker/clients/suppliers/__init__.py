"""Upstream supplier clients."""

from .base import SupplierClient
from .goglobal import GoGlobalClient
from .innstant import InnstantClient

__all__ = ["SupplierClient", "GoGlobalClient", "InnstantClient"]
