# qrledger_api/services/tx_metadata.py
"""
Kind-specific payloads carried by a Transaction. Stored as JSON on the row,
parsed into one dataclass per kind whenever a token is issued or claimed.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from qrledger_api.common.errors import InsufficientData
from qrledger_api.models.transaction import (
    FORECLOSE_LOAN,
    GRANT_LOAN,
    MARK_ATTENDANCE,
    PAY_CONTRACT_WAGES,
    PAY_WAGES,
    SETTLE_LOAN,
)


def _req(raw: Dict[str, Any], key: str, kind: str):
    v = raw.get(key)
    if v is None or v == "":
        raise InsufficientData(f"{kind} requires '{key}'")
    return v


def _amount(raw: Dict[str, Any], key: str, kind: str, required=True, allow_zero=False) -> Optional[Decimal]:
    v = raw.get(key)
    if v is None or v == "":
        if required:
            raise InsufficientData(f"{kind} requires '{key}'")
        return None
    try:
        d = Decimal(str(v))
    except (InvalidOperation, ValueError):
        raise InsufficientData(f"{kind}: '{key}' must be a number")
    if d < 0 or (d == 0 and not allow_zero):
        raise InsufficientData(f"{kind}: '{key}' must be {'non-negative' if allow_zero else 'positive'}")
    return d


def _currency(raw: Dict[str, Any]) -> Optional[str]:
    c = (raw.get("currency") or "").strip().upper()
    return c or None


@dataclass(frozen=True)
class PayWagesPayload:
    note: Optional[str] = None

    @classmethod
    def parse(cls, raw):
        return cls(note=(raw.get("note") or None))


@dataclass(frozen=True)
class SettleLoanPayload:
    @classmethod
    def parse(cls, raw):
        return cls()


@dataclass(frozen=True)
class ForecloseLoanPayload:
    loan_ids: List[int] = field(default_factory=list)

    @classmethod
    def parse(cls, raw):
        ids = raw.get("loan_ids") or []
        if not isinstance(ids, (list, tuple)) or not ids:
            raise InsufficientData("No loans specified for foreclosure")
        try:
            ids = [int(x) for x in ids]
        except (TypeError, ValueError):
            raise InsufficientData("foreclose_loan: 'loan_ids' must be integers")
        # keep order, drop repeats
        return cls(loan_ids=list(dict.fromkeys(ids)))


@dataclass(frozen=True)
class GrantLoanPayload:
    amount: Decimal
    interest_rate: Decimal
    monthly_deduction: Optional[Decimal] = None
    tenure_months: Optional[int] = None
    currency: Optional[str] = None

    @classmethod
    def parse(cls, raw):
        amount = _amount(raw, "amount", GRANT_LOAN)
        rate = _amount(raw, "interest_rate", GRANT_LOAN, allow_zero=True)
        deduction = _amount(raw, "monthly_deduction", GRANT_LOAN, required=False)
        tenure = raw.get("tenure_months")
        if tenure in (None, ""):
            tenure = None
        else:
            try:
                tenure = int(tenure)
            except (TypeError, ValueError):
                raise InsufficientData("grant_loan: 'tenure_months' must be an integer")
            if tenure <= 0:
                raise InsufficientData("grant_loan: 'tenure_months' must be positive")
        if (deduction is None) == (tenure is None):
            raise InsufficientData("grant_loan requires exactly one of 'monthly_deduction' or 'tenure_months'")
        return cls(amount, rate, deduction, tenure, _currency(raw))


@dataclass(frozen=True)
class PayContractWagesPayload:
    amount: Decimal
    currency: Optional[str] = None

    @classmethod
    def parse(cls, raw):
        return cls(_amount(raw, "amount", PAY_CONTRACT_WAGES), _currency(raw))


@dataclass(frozen=True)
class MarkAttendancePayload:
    attendance_date: Optional[date] = None

    @classmethod
    def parse(cls, raw):
        s = raw.get("attendance_date")
        if not s:
            return cls()
        try:
            return cls(date.fromisoformat(str(s)))
        except ValueError:
            raise InsufficientData("mark_attendance: 'attendance_date' must be YYYY-MM-DD")


Payload = Union[
    PayWagesPayload,
    SettleLoanPayload,
    ForecloseLoanPayload,
    GrantLoanPayload,
    PayContractWagesPayload,
    MarkAttendancePayload,
]

_REGISTRY = {
    PAY_WAGES: PayWagesPayload,
    SETTLE_LOAN: SettleLoanPayload,
    FORECLOSE_LOAN: ForecloseLoanPayload,
    GRANT_LOAN: GrantLoanPayload,
    PAY_CONTRACT_WAGES: PayContractWagesPayload,
    MARK_ATTENDANCE: MarkAttendancePayload,
}


def parse_payload(kind: str, raw: Optional[Dict[str, Any]]) -> Payload:
    cls = _REGISTRY.get(kind)
    if cls is None:
        raise InsufficientData(f"Unknown transaction kind '{kind}'")
    if raw is not None and not isinstance(raw, dict):
        raise InsufficientData("payload must be an object")
    return cls.parse(raw or {})


def to_json(payload: Payload) -> Dict[str, Any]:
    """JSON-safe dict for the Transaction.payload column."""
    out = {}
    for k, v in asdict(payload).items():
        if v is None:
            continue
        if isinstance(v, Decimal):
            v = str(v)
        elif isinstance(v, date):
            v = v.isoformat()
        out[k] = v
    return out
