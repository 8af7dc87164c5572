"""Ledger ORM models: one table per funnel stage, keyed by (event_id, wallet)."""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from campus_ledger.database import Base


class Registration(Base):
    __tablename__ = "registrations"

    event_id = Column(String(80), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    wallet = Column(String(128), primary_key=True)  # lower-cased
    tx_ref = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("registrations_event_created_idx", "event_id", "created_at"),
        Index("registrations_wallet_created_idx", "wallet", "created_at"),
        Index("registrations_tx_ref_idx", "tx_ref"),
    )


class Checkin(Base):
    __tablename__ = "checkins"

    event_id = Column(String(80), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    wallet = Column(String(128), primary_key=True)
    tx_ref = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("checkins_event_created_idx", "event_id", "created_at"),
        Index("checkins_tx_ref_idx", "tx_ref"),
    )


class Claim(Base):
    __tablename__ = "claims"

    event_id = Column(String(80), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    wallet = Column(String(128), primary_key=True)
    tx_ref = Column(String(128), nullable=True)
    mint_address = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("claims_event_created_idx", "event_id", "created_at"),
        Index("claims_tx_ref_idx", "tx_ref"),
    )


# Nullable columns older databases may lack; init() adds them when absent.
LEDGER_BACKFILL_COLUMNS = {
    Registration: ("tx_ref",),
    Checkin: ("tx_ref",),
    Claim: ("tx_ref", "mint_address"),
}
