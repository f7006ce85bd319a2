"""Database models."""

from esla.models.evidence import EvidenceRecord
from esla.models.validation import AssignmentRecord, ValidationRequestRecord
from esla.models.validator import ValidatorRecord

__all__ = ["EvidenceRecord", "ValidatorRecord", "ValidationRequestRecord", "AssignmentRecord"]
