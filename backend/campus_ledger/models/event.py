"""Event ORM model: the catalog row every ledger entry hangs off."""
import enum
from sqlalchemy import Column, String, Text, DateTime, BigInteger, Enum as SAEnum
from campus_ledger.database import Base


class EventStatus(str, enum.Enum):
    draft = "draft"
    published = "published"
    ended = "ended"


class Event(Base):
    __tablename__ = "events"

    id = Column(String(80), primary_key=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    check_in_secret = Column(String(128), nullable=False)
    ticket_price_lamports = Column(BigInteger, nullable=False, default=0)
    poap_collection = Column(String(128), nullable=True)
    # Stored as plain text so rows written by other tools stay readable.
    status = Column(
        SAEnum(EventStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=EventStatus.draft,
    )
