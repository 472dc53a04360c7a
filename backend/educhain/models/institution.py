import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum as SQLEnum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from educhain.core.database import Base


class VerificationStatus(str, enum.Enum):
    """Institution workflow status, owned by the record store."""
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Institution(Base):
    """Issuing institution with its ledger-sync sub-record."""
    
    __tablename__ = "institutions"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, index=True, nullable=False)
    registration_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    
    verification_status: Mapped[VerificationStatus] = mapped_column(
        SQLEnum(
            VerificationStatus,
            name="verification_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=VerificationStatus.NOT_SUBMITTED,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    
    # Ledger sync
    blockchain_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blockchain_authorized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blockchain_tx_hash: Mapped[Optional[str]] = mapped_column(String(66))
    blockchain_auth_tx_hash: Mapped[Optional[str]] = mapped_column(String(66))
    blockchain_registration_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    blockchain_authorization_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    blockchain_error: Mapped[Optional[str]] = mapped_column(Text)
    
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    certificates: Mapped[list["Certificate"]] = relationship(back_populates="institution")
    verification_requests: Mapped[list["VerificationRequest"]] = relationship(back_populates="institution")
    
    __table_args__ = (
        CheckConstraint(
            "NOT blockchain_authorized OR blockchain_registered",
            name="institutions_authorized_requires_registered",
        ),
    )
