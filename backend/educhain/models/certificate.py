import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from educhain.core.database import Base


class Certificate(Base):
    """Issued certificate with content reference and ledger-sync sub-record."""
    
    __tablename__ = "certificates"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("institutions.id"), index=True, nullable=False
    )
    institution_name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    # Student
    student_id: Mapped[Optional[str]] = mapped_column(String(100))
    student_address: Mapped[str] = mapped_column(String(42), nullable=False, default="")
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_email: Mapped[Optional[str]] = mapped_column(String(255))
    
    # Award
    course_name: Mapped[str] = mapped_column(String(255), nullable=False)
    grade: Mapped[str] = mapped_column(String(50), nullable=False, default="N/A")
    certificate_type: Mapped[str] = mapped_column(String(50), nullable=False, default="Academic")
    completion_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    
    # Content reference
    content_hash: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    
    # Validity
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    revoked_by: Mapped[Optional[str]] = mapped_column(String(255))
    revoke_reason: Mapped[Optional[str]] = mapped_column(Text)
    
    # Ledger sync
    is_minted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    token_id: Mapped[Optional[int]] = mapped_column(BigInteger, unique=True)
    minted_to: Mapped[Optional[str]] = mapped_column(String(42))
    minted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    blockchain_tx_hash: Mapped[Optional[str]] = mapped_column(String(66))
    blockchain_block_number: Mapped[Optional[int]] = mapped_column(Integer)
    blockchain_revoke_tx_hash: Mapped[Optional[str]] = mapped_column(String(66))
    blockchain_revoke_block_number: Mapped[Optional[int]] = mapped_column(Integer)
    blockchain_error: Mapped[Optional[str]] = mapped_column(Text)
    
    # Relationships
    institution: Mapped["Institution"] = relationship(back_populates="certificates")
    
    __table_args__ = (
        CheckConstraint(
            "(is_minted AND token_id IS NOT NULL) OR (NOT is_minted AND token_id IS NULL)",
            name="certificates_token_iff_minted",
        ),
        UniqueConstraint(
            "institution_id", "student_id", "course_name",
            name="certificates_student_course_unique",
        ),
    )
