"""Funnel helpers shared by both store backends: wallet keys, verification
status, participant filtering and tx-ref tie-breaking."""
from typing import Iterable, Optional

from campus_ledger.schemas.ledger import (
    ActionRecord,
    ClaimRecord,
    FunnelStatus,
    TxStage,
    TxVerification,
    WalletVerification,
)
from campus_ledger.schemas.participants import (
    ParticipantRow,
    ParticipantsPage,
    ParticipantsQuery,
    StageFilter,
)

# Later stages win when two ledger entries share an instant.
_STAGE_RANK = {TxStage.register: 0, TxStage.check_in: 1, TxStage.claim: 2}


def normalize_wallet(wallet: str) -> str:
    return wallet.lower()


def build_wallet_verification(
    event_id: str,
    wallet: str,
    registered: Optional[ActionRecord],
    checked_in: Optional[ActionRecord],
    claimed: Optional[ClaimRecord],
) -> WalletVerification:
    """Combine the three ledger lookups; the furthest stage reached wins."""
    status = FunnelStatus.not_registered
    if claimed is not None:
        status = FunnelStatus.claimed
    elif checked_in is not None:
        status = FunnelStatus.checked_in
    elif registered is not None:
        status = FunnelStatus.registered
    return WalletVerification(
        event_id=event_id,
        wallet=wallet,
        status=status,
        registered=registered,
        checked_in=checked_in,
        claimed=claimed,
    )


def latest_tx_match(candidates: Iterable[TxVerification]) -> Optional[TxVerification]:
    """Pick the most recent match for a reused tx ref."""
    best = None
    for candidate in candidates:
        if best is None or _tx_sort_key(candidate) > _tx_sort_key(best):
            best = candidate
    return best


def _tx_sort_key(match: TxVerification):
    return (match.occurred_at, _STAGE_RANK[match.stage])


def matches_stage(row: ParticipantRow, stage: StageFilter) -> bool:
    if stage == StageFilter.registered:
        return row.registered_at is not None
    if stage == StageFilter.checked_in:
        return row.checked_in_at is not None
    if stage == StageFilter.claimed:
        return row.claimed_at is not None
    return True


def matches_search(row: ParticipantRow, search: Optional[str]) -> bool:
    if not search:
        return True
    return search.lower() in row.wallet.lower()


def paginate_participants(rows: list[ParticipantRow], query: ParticipantsQuery) -> ParticipantsPage:
    """Filter, sort by wallet and slice; ``total`` counts the filtered rows."""
    filtered = sorted(
        (row for row in rows if matches_stage(row, query.stage) and matches_search(row, query.search)),
        key=lambda row: row.wallet,
    )
    return ParticipantsPage(
        rows=filtered[query.offset:query.offset + query.limit],
        total=len(filtered),
        limit=query.limit,
        offset=query.offset,
    )
