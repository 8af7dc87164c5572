"""Relational event store on SQLAlchemy.

PostgreSQL in production, SQLite in tests and single-node setups. Ledger
upserts use the dialect's ``INSERT ... ON CONFLICT DO UPDATE`` with
``COALESCE(existing, new)`` so concurrent writers never replace a
``tx_ref`` or ``mint_address`` that is already set.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, Optional, Union

from sqlalchemy import String, and_, func, inspect, select, text, union
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from campus_ledger.database import Base, make_engine
from campus_ledger.models.event import Event
from campus_ledger.models.ledger import LEDGER_BACKFILL_COLUMNS, Checkin, Claim, Registration
from campus_ledger.schemas.analytics import EventStats, OrganizerOverview, RetentionPoint, TimeseriesPoint
from campus_ledger.schemas.event import EventCreate, EventOut, EventUpdate, NULLABLE_EVENT_FIELDS
from campus_ledger.schemas.ledger import ActionRecord, ClaimRecord, TxStage, TxVerification, WalletVerification
from campus_ledger.schemas.participants import (
    ParticipantRow,
    ParticipantsPage,
    ParticipantsQuery,
    StageFilter,
)
from campus_ledger.store import analytics, funnel
from campus_ledger.store.analytics import RETENTION_WINDOW
from campus_ledger.store.base import Clock, generated_event_id, sample_event
from campus_ledger.store.errors import BackendInitError, Conflict, NotFound, QueryError, ValidationError
from campus_ledger.timeutil import as_utc, day_window, utcnow

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _action_record(row) -> Optional[ActionRecord]:
    if row is None:
        return None
    return ActionRecord(at=as_utc(row.created_at), tx_ref=row.tx_ref)


def _claim_record(row) -> Optional[ClaimRecord]:
    if row is None:
        return None
    return ClaimRecord(at=as_utc(row.created_at), tx_ref=row.tx_ref, mint_address=row.mint_address)


class RelationalStore:
    mode = "relational"

    def __init__(
        self,
        bind: Union[str, Engine],
        clock: Clock = utcnow,
        seed_sample_event: bool = True,
    ):
        self._engine = make_engine(bind) if isinstance(bind, str) else bind
        self._session_factory = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)
        self._clock = clock
        self._seed_sample_event = seed_sample_event

    @property
    def engine(self) -> Engine:
        return self._engine

    def _now(self) -> datetime:
        return as_utc(self._clock())

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """One session per store call; storage faults surface as ``QueryError``."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise QueryError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- lifecycle ---

    def init(self) -> None:
        """Create tables, indexes and missing columns, then seed an empty catalog."""
        try:
            Base.metadata.create_all(bind=self._engine)
            self._backfill_columns()
            if self._seed_sample_event:
                self._seed()
        except (SQLAlchemyError, QueryError) as exc:
            raise BackendInitError(f"Relational store init failed: {exc}") from exc
        logger.info("Relational store ready (%s)", self._engine.dialect.name)

    def _backfill_columns(self) -> None:
        with self._engine.begin() as conn:
            inspector = inspect(conn)
            for model, columns in LEDGER_BACKFILL_COLUMNS.items():
                table = model.__tablename__
                present = {column["name"] for column in inspector.get_columns(table)}
                for column in columns:
                    if column not in present:
                        logger.info("Adding missing column %s.%s", table, column)
                        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} VARCHAR(128) NULL"))
                # create_all skips indexes of tables that already existed.
                for index in model.__table__.indexes:
                    index.create(conn, checkfirst=True)

    def _seed(self) -> None:
        with self._session() as session:
            if session.query(Event.id).first() is not None:
                return
            seed = sample_event(self._now())
            session.add(Event(**seed.model_dump()))
            logger.info("Seeded sample event %s", seed.id)

    def close(self) -> None:
        self._engine.dispose()

    # --- catalog ---

    def list_events(self) -> list[EventOut]:
        with self._session() as session:
            rows = session.query(Event).order_by(Event.start_at.desc(), Event.id).all()
            return [EventOut.model_validate(row) for row in rows]

    def get_event_by_id(self, event_id: str) -> Optional[EventOut]:
        with self._session() as session:
            row = session.get(Event, event_id)
            return EventOut.model_validate(row) if row else None

    def create_event(self, payload: EventCreate) -> EventOut:
        data = payload.model_dump()
        data["id"] = payload.id or generated_event_id(self._now())
        with self._session() as session:
            row = Event(**data)
            session.add(row)
            try:
                session.flush()
            except IntegrityError as exc:
                raise Conflict(f"Event id already exists: {data['id']}") from exc
            return EventOut.model_validate(row)

    def update_event(self, event_id: str, patch: EventUpdate) -> Optional[EventOut]:
        with self._session() as session:
            row = session.get(Event, event_id)
            if row is None:
                return None
            for field, value in patch.changes().items():
                setattr(row, field, value)
            session.flush()
            return EventOut.model_validate(row)

    def set_event_field_if_absent(self, event_id: str, field: str, value: str) -> Optional[str]:
        if field not in NULLABLE_EVENT_FIELDS:
            raise ValidationError(f"Field cannot be set lazily: {field}")
        column = getattr(Event, field)
        with self._session() as session:
            # A single conditional UPDATE is the compare-and-set; losers match no row.
            session.query(Event).filter(Event.id == event_id, column.is_(None)).update(
                {column: value}, synchronize_session=False
            )
            current = session.query(Event.id, column).filter(Event.id == event_id).first()
            if current is None:
                raise NotFound(f"Event not found: {event_id}")
            return current[1]

    # --- analytics ---

    def get_overview(self) -> OrganizerOverview:
        with self._session() as session:
            counts = dict(session.query(Event.status, func.count()).group_by(Event.status).all())
            return analytics.build_overview(
                counts,
                session.query(func.count()).select_from(Registration).scalar(),
                session.query(func.count()).select_from(Checkin).scalar(),
                session.query(func.count()).select_from(Claim).scalar(),
            )

    def get_event_stats(self, event_id: str) -> EventStats:
        with self._session() as session:
            def count(model) -> int:
                return session.query(func.count()).select_from(model).filter(model.event_id == event_id).scalar()

            return analytics.build_event_stats(event_id, count(Registration), count(Checkin), count(Claim))

    def get_event_timeseries(self, event_id: str, date_from: date, date_to: date) -> list[TimeseriesPoint]:
        start, end = day_window(date_from, date_to)
        with self._session() as session:
            def instants(model) -> list[datetime]:
                rows = session.query(model.created_at).filter(
                    model.event_id == event_id,
                    model.created_at >= start,
                    model.created_at < end,
                )
                return [as_utc(at) for (at,) in rows]

            return analytics.build_timeseries(
                date_from, date_to, instants(Registration), instants(Checkin), instants(Claim)
            )

    def get_retention_cohorts(self, date_from: date, date_to: date) -> list[RetentionPoint]:
        start, end = day_window(date_from, date_to)
        first_ts = func.min(Registration.created_at)
        with self._session() as session:
            first_touch = (
                session.query(Registration.wallet.label("wallet"), first_ts.label("first_ts"))
                .group_by(Registration.wallet)
                .having(and_(first_ts >= start, first_ts < end))
                .subquery()
            )
            anchors = {
                wallet: as_utc(at)
                for wallet, at in session.query(first_touch.c.wallet, first_touch.c.first_ts)
            }
            # Coarse SQL bound; the exact seven-day window is applied per wallet.
            later = (
                session.query(Registration.wallet, Registration.created_at)
                .join(first_touch, first_touch.c.wallet == Registration.wallet)
                .filter(
                    Registration.created_at > first_touch.c.first_ts,
                    Registration.created_at < end + RETENTION_WINDOW,
                )
                .all()
            )
        return analytics.build_retention(date_from, date_to, anchors, later)

    # --- participants ---

    def _participants_base(self, event_id: str):
        wallets = union(
            select(Registration.wallet).where(Registration.event_id == event_id),
            select(Checkin.wallet).where(Checkin.event_id == event_id),
            select(Claim.wallet).where(Claim.event_id == event_id),
        ).subquery("wallets")
        return select(
            wallets.c.wallet.label("wallet"),
            Registration.created_at.label("registered_at"),
            Checkin.created_at.label("checked_in_at"),
            Claim.created_at.label("claimed_at"),
        ).select_from(
            wallets
            .outerjoin(Registration, and_(Registration.event_id == event_id, Registration.wallet == wallets.c.wallet))
            .outerjoin(Checkin, and_(Checkin.event_id == event_id, Checkin.wallet == wallets.c.wallet))
            .outerjoin(Claim, and_(Claim.event_id == event_id, Claim.wallet == wallets.c.wallet))
        ), wallets

    @staticmethod
    def _participant_row(row) -> ParticipantRow:
        return ParticipantRow(
            wallet=row.wallet,
            registered_at=as_utc(row.registered_at),
            checked_in_at=as_utc(row.checked_in_at),
            claimed_at=as_utc(row.claimed_at),
        )

    def list_participants(self, event_id: str) -> list[ParticipantRow]:
        base, wallets = self._participants_base(event_id)
        with self._session() as session:
            rows = session.execute(base.order_by(wallets.c.wallet)).all()
            return [self._participant_row(row) for row in rows]

    def list_participants_page(self, event_id: str, query: ParticipantsQuery) -> ParticipantsPage:
        base, wallets = self._participants_base(event_id)
        stage_column = {
            StageFilter.registered: Registration.created_at,
            StageFilter.checked_in: Checkin.created_at,
            StageFilter.claimed: Claim.created_at,
        }.get(query.stage)
        if stage_column is not None:
            base = base.where(stage_column.isnot(None))
        if query.search:
            wallet = func.lower(wallets.c.wallet, type_=String)
            base = base.where(wallet.contains(query.search.lower(), autoescape=True))

        with self._session() as session:
            total = session.execute(select(func.count()).select_from(base.subquery())).scalar()
            rows = session.execute(
                base.order_by(wallets.c.wallet).limit(query.limit).offset(query.offset)
            ).all()
            return ParticipantsPage(
                rows=[self._participant_row(row) for row in rows],
                total=total,
                limit=query.limit,
                offset=query.offset,
            )

    def get_wallet_verification(self, event_id: str, wallet: str) -> WalletVerification:
        wallet = funnel.normalize_wallet(wallet)
        key = (event_id, wallet)
        with self._session() as session:
            registration = session.get(Registration, key)
            checkin = session.get(Checkin, key)
            claim = session.get(Claim, key)
            return funnel.build_wallet_verification(
                event_id,
                wallet,
                registered=_action_record(registration),
                checked_in=_action_record(checkin),
                claimed=_claim_record(claim),
            )

    def get_tx_verification(self, tx_ref: str) -> Optional[TxVerification]:
        candidates = []
        with self._session() as session:
            for stage, model in (
                (TxStage.register, Registration),
                (TxStage.check_in, Checkin),
                (TxStage.claim, Claim),
            ):
                for row in session.query(model).filter(model.tx_ref == tx_ref):
                    candidates.append(TxVerification(
                        tx_ref=tx_ref,
                        event_id=row.event_id,
                        wallet=row.wallet,
                        stage=stage,
                        occurred_at=as_utc(row.created_at),
                        mint_address=getattr(row, "mint_address", None),
                    ))
        return funnel.latest_tx_match(candidates)

    # --- ledger ---

    def _has(self, model, event_id: str, wallet: str) -> bool:
        with self._session() as session:
            return session.get(model, (event_id, funnel.normalize_wallet(wallet))) is not None

    def _upsert(self, model, event_id: str, wallet: str, **fields) -> None:
        dialect = self._engine.dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise QueryError(f"Ledger upserts are not supported on {dialect}")
        stmt = insert(model).values(
            event_id=event_id,
            wallet=funnel.normalize_wallet(wallet),
            created_at=self._now(),
            **fields,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.event_id, model.wallet],
            set_={
                name: func.coalesce(getattr(model, name), getattr(stmt.excluded, name))
                for name in fields
            },
        )
        with self._session() as session:
            session.execute(stmt)
        logger.debug("%s: upserted %s/%s", model.__tablename__, event_id, wallet)

    def has_registration(self, event_id: str, wallet: str) -> bool:
        return self._has(Registration, event_id, wallet)

    def add_registration(self, event_id: str, wallet: str, tx_ref: Optional[str] = None) -> None:
        self._upsert(Registration, event_id, wallet, tx_ref=tx_ref)

    def has_checkin(self, event_id: str, wallet: str) -> bool:
        return self._has(Checkin, event_id, wallet)

    def add_checkin(self, event_id: str, wallet: str, tx_ref: Optional[str] = None) -> None:
        self._upsert(Checkin, event_id, wallet, tx_ref=tx_ref)

    def has_claim(self, event_id: str, wallet: str) -> bool:
        return self._has(Claim, event_id, wallet)

    def add_claim(
        self,
        event_id: str,
        wallet: str,
        tx_ref: Optional[str] = None,
        mint_address: Optional[str] = None,
    ) -> None:
        self._upsert(Claim, event_id, wallet, tx_ref=tx_ref, mint_address=mint_address)
