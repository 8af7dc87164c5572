"""Pydantic schemas for ledger lookups (wallet and tx verification)."""
from __future__ import annotations
import enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class FunnelStatus(str, enum.Enum):
    not_registered = "not-registered"
    registered = "registered"
    checked_in = "checked-in"
    claimed = "claimed"


class TxStage(str, enum.Enum):
    register = "register"
    check_in = "check-in"
    claim = "claim"


class ActionRecord(BaseModel):
    at: datetime
    tx_ref: Optional[str] = None


class ClaimRecord(ActionRecord):
    mint_address: Optional[str] = None


class WalletVerification(BaseModel):
    event_id: str
    wallet: str
    status: FunnelStatus
    registered: Optional[ActionRecord] = None
    checked_in: Optional[ActionRecord] = None
    claimed: Optional[ClaimRecord] = None


class TxVerification(BaseModel):
    tx_ref: str
    event_id: str
    wallet: str
    stage: TxStage
    occurred_at: datetime
    mint_address: Optional[str] = None
