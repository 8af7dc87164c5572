"""The store contract both backends implement."""
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Protocol

from campus_ledger.models.event import EventStatus
from campus_ledger.schemas.analytics import EventStats, OrganizerOverview, RetentionPoint, TimeseriesPoint
from campus_ledger.schemas.event import EventCreate, EventOut, EventUpdate
from campus_ledger.schemas.ledger import TxVerification, WalletVerification
from campus_ledger.schemas.participants import ParticipantRow, ParticipantsPage, ParticipantsQuery

Clock = Callable[[], datetime]

SAMPLE_EVENT_ID = "solana-campus-week"


class EventStore(Protocol):
    """Event catalog, action ledger and read-side analytics over them.

    Wallets are lower-cased before they are used as keys. ``add_*`` calls are
    idempotent upserts: an existing entry keeps its timestamp and only gains
    a ``tx_ref``/``mint_address`` it did not have yet.
    """

    mode: str

    def init(self) -> None: ...
    def close(self) -> None: ...

    def list_events(self) -> list[EventOut]: ...
    def get_event_by_id(self, event_id: str) -> Optional[EventOut]: ...
    def create_event(self, payload: EventCreate) -> EventOut: ...
    def update_event(self, event_id: str, patch: EventUpdate) -> Optional[EventOut]: ...
    def set_event_field_if_absent(self, event_id: str, field: str, value: str) -> Optional[str]: ...

    def get_overview(self) -> OrganizerOverview: ...
    def get_event_stats(self, event_id: str) -> EventStats: ...
    def get_event_timeseries(self, event_id: str, date_from: date, date_to: date) -> list[TimeseriesPoint]: ...
    def get_retention_cohorts(self, date_from: date, date_to: date) -> list[RetentionPoint]: ...

    def list_participants(self, event_id: str) -> list[ParticipantRow]: ...
    def list_participants_page(self, event_id: str, query: ParticipantsQuery) -> ParticipantsPage: ...
    def get_wallet_verification(self, event_id: str, wallet: str) -> WalletVerification: ...
    def get_tx_verification(self, tx_ref: str) -> Optional[TxVerification]: ...

    def has_registration(self, event_id: str, wallet: str) -> bool: ...
    def add_registration(self, event_id: str, wallet: str, tx_ref: Optional[str] = None) -> None: ...
    def has_checkin(self, event_id: str, wallet: str) -> bool: ...
    def add_checkin(self, event_id: str, wallet: str, tx_ref: Optional[str] = None) -> None: ...
    def has_claim(self, event_id: str, wallet: str) -> bool: ...
    def add_claim(
        self,
        event_id: str,
        wallet: str,
        tx_ref: Optional[str] = None,
        mint_address: Optional[str] = None,
    ) -> None: ...


def sample_event(now: datetime) -> EventCreate:
    """The demo event seeded into an empty catalog, open a month either side of ``now``."""
    month = timedelta(days=30)
    return EventCreate(
        id=SAMPLE_EVENT_ID,
        name="Solana Campus Week",
        description="Community meetup for builders and students.",
        start_at=now - month,
        end_at=now + month,
        check_in_secret="campus-2026",
        ticket_price_lamports=0,
        poap_collection=None,
        status=EventStatus.published,
    )


def generated_event_id(now: datetime) -> str:
    return f"event-{int(now.timestamp() * 1000)}"
