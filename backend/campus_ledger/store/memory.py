"""In-process event store.

Used in development and as the degraded fallback when the database cannot be
initialized. Ledger writes reproduce the relational backend's
``ON CONFLICT DO UPDATE ... COALESCE`` semantics under a per-ledger lock.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Optional

from campus_ledger.models.event import EventStatus
from campus_ledger.schemas.analytics import EventStats, OrganizerOverview, RetentionPoint, TimeseriesPoint
from campus_ledger.schemas.event import EventCreate, EventOut, EventUpdate, NULLABLE_EVENT_FIELDS
from campus_ledger.schemas.ledger import ActionRecord, ClaimRecord, TxStage, TxVerification, WalletVerification
from campus_ledger.schemas.participants import ParticipantRow, ParticipantsPage, ParticipantsQuery
from campus_ledger.store import analytics, funnel
from campus_ledger.store.base import Clock, generated_event_id, sample_event
from campus_ledger.store.errors import Conflict, NotFound, QueryError, ValidationError
from campus_ledger.timeutil import as_utc, day_window, utcnow

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    at: datetime
    tx_ref: Optional[str] = None
    mint_address: Optional[str] = None


class _Ledger:
    """Entries keyed by ``(event_id, wallet)`` with an ``event_id -> wallets`` index."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], _Entry] = {}
        self._by_event: dict[str, set[str]] = defaultdict(set)

    def has(self, event_id: str, wallet: str) -> bool:
        with self._lock:
            return (event_id, wallet) in self._entries

    def get(self, event_id: str, wallet: str) -> Optional[_Entry]:
        with self._lock:
            entry = self._entries.get((event_id, wallet))
            return replace(entry) if entry else None

    def upsert(
        self,
        event_id: str,
        wallet: str,
        at: datetime,
        tx_ref: Optional[str],
        mint_address: Optional[str] = None,
    ) -> None:
        key = (event_id, wallet)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = _Entry(at=at, tx_ref=tx_ref, mint_address=mint_address)
                self._by_event[event_id].add(wallet)
                logger.debug("%s: inserted %s/%s", self.name, event_id, wallet)
                return
            if entry.tx_ref is None:
                entry.tx_ref = tx_ref
            if entry.mint_address is None:
                entry.mint_address = mint_address

    def for_event(self, event_id: str) -> dict[str, _Entry]:
        with self._lock:
            return {
                wallet: replace(self._entries[(event_id, wallet)])
                for wallet in self._by_event.get(event_id, ())
            }

    def snapshot(self) -> list[tuple[str, str, _Entry]]:
        with self._lock:
            return [(event_id, wallet, replace(entry)) for (event_id, wallet), entry in self._entries.items()]

    def count(self, event_id: Optional[str] = None) -> int:
        with self._lock:
            if event_id is None:
                return len(self._entries)
            return len(self._by_event.get(event_id, ()))


def _action_record(entry: Optional[_Entry]) -> Optional[ActionRecord]:
    return ActionRecord(at=entry.at, tx_ref=entry.tx_ref) if entry else None


def _claim_record(entry: Optional[_Entry]) -> Optional[ClaimRecord]:
    if entry is None:
        return None
    return ClaimRecord(at=entry.at, tx_ref=entry.tx_ref, mint_address=entry.mint_address)


class MemoryStore:
    mode = "memory"

    def __init__(self, clock: Clock = utcnow, seed_sample_event: bool = True):
        self._clock = clock
        self._seed_sample_event = seed_sample_event
        self._catalog_lock = threading.Lock()
        self._events: dict[str, EventOut] = {}
        self.registrations = _Ledger("registrations")
        self.checkins = _Ledger("checkins")
        self.claims = _Ledger("claims")

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def init(self) -> None:
        if self._seed_sample_event:
            seed = sample_event(self._now())
            with self._catalog_lock:
                if not self._events:
                    self._events[seed.id] = EventOut(**seed.model_dump())
                    logger.info("Seeded sample event %s", seed.id)

    def close(self) -> None:
        pass

    # --- catalog ---

    def list_events(self) -> list[EventOut]:
        with self._catalog_lock:
            events = [event.model_copy() for event in self._events.values()]
        events.sort(key=lambda event: event.id)
        events.sort(key=lambda event: event.start_at, reverse=True)
        return events

    def get_event_by_id(self, event_id: str) -> Optional[EventOut]:
        with self._catalog_lock:
            event = self._events.get(event_id)
            return event.model_copy() if event else None

    def create_event(self, payload: EventCreate) -> EventOut:
        data = payload.model_dump()
        data["id"] = payload.id or generated_event_id(self._now())
        event = EventOut(**data)
        with self._catalog_lock:
            if event.id in self._events:
                raise Conflict(f"Event id already exists: {event.id}")
            self._events[event.id] = event
        return event.model_copy()

    def update_event(self, event_id: str, patch: EventUpdate) -> Optional[EventOut]:
        with self._catalog_lock:
            current = self._events.get(event_id)
            if current is None:
                return None
            merged = current.model_copy(update=patch.changes())
            self._events[event_id] = merged
            return merged.model_copy()

    def set_event_field_if_absent(self, event_id: str, field: str, value: str) -> Optional[str]:
        if field not in NULLABLE_EVENT_FIELDS:
            raise ValidationError(f"Field cannot be set lazily: {field}")
        with self._catalog_lock:
            current = self._events.get(event_id)
            if current is None:
                raise NotFound(f"Event not found: {event_id}")
            existing = getattr(current, field)
            if existing is not None:
                return existing
            self._events[event_id] = current.model_copy(update={field: value})
            return value

    # --- analytics ---

    def get_overview(self) -> OrganizerOverview:
        with self._catalog_lock:
            statuses = [event.status for event in self._events.values()]
        counts = {status: statuses.count(status) for status in EventStatus}
        return analytics.build_overview(
            counts,
            self.registrations.count(),
            self.checkins.count(),
            self.claims.count(),
        )

    def get_event_stats(self, event_id: str) -> EventStats:
        return analytics.build_event_stats(
            event_id,
            self.registrations.count(event_id),
            self.checkins.count(event_id),
            self.claims.count(event_id),
        )

    def get_event_timeseries(self, event_id: str, date_from: date, date_to: date) -> list[TimeseriesPoint]:
        start, end = day_window(date_from, date_to)

        def instants(ledger: _Ledger) -> list[datetime]:
            return [e.at for e in ledger.for_event(event_id).values() if start <= e.at < end]

        return analytics.build_timeseries(
            date_from,
            date_to,
            instants(self.registrations),
            instants(self.checkins),
            instants(self.claims),
        )

    def get_retention_cohorts(self, date_from: date, date_to: date) -> list[RetentionPoint]:
        touches = [(wallet, entry.at) for _, wallet, entry in self.registrations.snapshot()]
        anchors = analytics.first_registrations(touches)
        return analytics.build_retention(date_from, date_to, anchors, touches)

    # --- participants ---

    def list_participants(self, event_id: str) -> list[ParticipantRow]:
        registered = self.registrations.for_event(event_id)
        checked_in = self.checkins.for_event(event_id)
        claimed = self.claims.for_event(event_id)
        rows = []
        for wallet in sorted(set(registered) | set(checked_in) | set(claimed)):
            rows.append(ParticipantRow(
                wallet=wallet,
                registered_at=registered[wallet].at if wallet in registered else None,
                checked_in_at=checked_in[wallet].at if wallet in checked_in else None,
                claimed_at=claimed[wallet].at if wallet in claimed else None,
            ))
        return rows

    def list_participants_page(self, event_id: str, query: ParticipantsQuery) -> ParticipantsPage:
        return funnel.paginate_participants(self.list_participants(event_id), query)

    def get_wallet_verification(self, event_id: str, wallet: str) -> WalletVerification:
        wallet = funnel.normalize_wallet(wallet)
        return funnel.build_wallet_verification(
            event_id,
            wallet,
            registered=_action_record(self.registrations.get(event_id, wallet)),
            checked_in=_action_record(self.checkins.get(event_id, wallet)),
            claimed=_claim_record(self.claims.get(event_id, wallet)),
        )

    def get_tx_verification(self, tx_ref: str) -> Optional[TxVerification]:
        candidates = []
        for stage, ledger in (
            (TxStage.register, self.registrations),
            (TxStage.check_in, self.checkins),
            (TxStage.claim, self.claims),
        ):
            for event_id, wallet, entry in ledger.snapshot():
                if entry.tx_ref != tx_ref:
                    continue
                candidates.append(TxVerification(
                    tx_ref=tx_ref,
                    event_id=event_id,
                    wallet=wallet,
                    stage=stage,
                    occurred_at=entry.at,
                    mint_address=entry.mint_address if stage == TxStage.claim else None,
                ))
        return funnel.latest_tx_match(candidates)

    # --- ledger ---

    def _check_event(self, event_id: str) -> None:
        """Ledger entries must reference a catalog event, as the relational foreign key requires."""
        with self._catalog_lock:
            if event_id not in self._events:
                raise QueryError(f"Ledger entry references unknown event: {event_id}")

    def has_registration(self, event_id: str, wallet: str) -> bool:
        return self.registrations.has(event_id, funnel.normalize_wallet(wallet))

    def add_registration(self, event_id: str, wallet: str, tx_ref: Optional[str] = None) -> None:
        self._check_event(event_id)
        self.registrations.upsert(event_id, funnel.normalize_wallet(wallet), self._now(), tx_ref)

    def has_checkin(self, event_id: str, wallet: str) -> bool:
        return self.checkins.has(event_id, funnel.normalize_wallet(wallet))

    def add_checkin(self, event_id: str, wallet: str, tx_ref: Optional[str] = None) -> None:
        self._check_event(event_id)
        self.checkins.upsert(event_id, funnel.normalize_wallet(wallet), self._now(), tx_ref)

    def has_claim(self, event_id: str, wallet: str) -> bool:
        return self.claims.has(event_id, funnel.normalize_wallet(wallet))

    def add_claim(
        self,
        event_id: str,
        wallet: str,
        tx_ref: Optional[str] = None,
        mint_address: Optional[str] = None,
    ) -> None:
        self._check_event(event_id)
        self.claims.upsert(event_id, funnel.normalize_wallet(wallet), self._now(), tx_ref, mint_address)
