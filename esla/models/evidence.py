"""Evidence model (read-only for the engine)."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from esla.database import Base


class EvidenceRecord(Base):
    """Evidence catalog - owned by the challenge/evidence service."""

    __tablename__ = "evidence"

    evidence_id: Mapped[str] = mapped_column(Text, primary_key=True)
    challenge_id: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    required_specialization: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="STANDARD"
    )  # STANDARD|PRIORITY|URGENT
