"""
Permohonan persistence: repository interface and its backends.
"""

from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.db.repository_memory import InMemoryPermohonanRepository
from sipedes_api.workflow.db.repository_permohonan import PostgresPermohonanRepository
from sipedes_api.workflow.db.pool import DomainDBPool

__all__ = [
    "PermohonanRepository",
    "InMemoryPermohonanRepository",
    "PostgresPermohonanRepository",
    "DomainDBPool",
]
