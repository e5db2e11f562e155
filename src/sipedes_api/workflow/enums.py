"""
Workflow Enums

All enum types used throughout the permohonan workflow.
Values must match exactly with database constraints.
"""

from enum import Enum

# ════════════════════════════════════════════════════════════════════════════
# Permohonan Lifecycle Enums
# ════════════════════════════════════════════════════════════════════════════


class PermohonanStatus(str, Enum):
    """Permohonan lifecycle status."""

    SUBMITTED = "SUBMITTED"  # Diajukan
    VERIFIED = "VERIFIED"  # Diverifikasi
    PROCESSING = "PROCESSING"  # Diproses
    COMPLETED = "COMPLETED"  # Selesai (terminal)
    REJECTED = "REJECTED"  # Ditolak (terminal)


TERMINAL_STATUSES = frozenset({PermohonanStatus.COMPLETED, PermohonanStatus.REJECTED})


# ════════════════════════════════════════════════════════════════════════════
# Identity Enums
# ════════════════════════════════════════════════════════════════════════════


class Role(str, Enum):
    """Role granted by the identity collaborator."""

    CITIZEN = "citizen"
    OFFICER = "officer"

    @classmethod
    def _missing_(cls, value):
        # Older clients send the portal's role names
        aliases = {"user": cls.CITIZEN, "warga": cls.CITIZEN, "admin": cls.OFFICER, "petugas": cls.OFFICER}
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


# ════════════════════════════════════════════════════════════════════════════
# Document Enums
# ════════════════════════════════════════════════════════════════════════════


class MediaType(str, Enum):
    """Media types accepted for uploaded documents."""

    JPEG = "image/jpeg"
    PNG = "image/png"
    PDF = "application/pdf"


# Label carried by the final issued document
RESULT_LABEL = "result"
