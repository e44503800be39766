# qrledger_api/services/token_codec.py
"""
Text codecs for the two token families exchanged through QR codes.

Linking token (employer -> employee, creates an Employment):

    employer:<employer_id>:<contact>[:<employment_type>[:<urlencoded JSON>]]

Transaction token (single-use action):

    qr:<kind>:<employer_id>:<subject>:<ms_timestamp>
    qr:<kind>:<employer_id>:<subject>:<YYYY-MM-DD>:<ms_timestamp>

Fields are colon separated, so no field may contain ':'; the part-time
configuration JSON is URL-encoded for that reason.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

from qrledger_api.common.errors import MalformedToken
from qrledger_api.models.employment import EMPLOYMENT_TYPES, FULL_TIME
from qrledger_api.models.transaction import KINDS

LINK_PREFIX = "employer"
TX_PREFIX = "qr"
SEP = ":"


@dataclass(frozen=True)
class LinkToken:
    employer_id: str
    contact: str
    employment_type: Optional[str] = None
    config: Optional[Dict[str, Any]] = None

    @property
    def classification(self) -> str:
        return self.employment_type or FULL_TIME

    @property
    def hours_per_day(self):
        return (self.config or {}).get("workingHoursPerDay")

    @property
    def days_per_month(self):
        return (self.config or {}).get("workingDaysPerMonth")


@dataclass(frozen=True)
class TxToken:
    kind: str
    employer_id: str
    subject: str
    timestamp_ms: int
    attendance_date: Optional[date] = None

    @property
    def is_backfill(self) -> bool:
        return self.attendance_date is not None


def _check_field(value: str, name: str):
    if value is None or str(value) == "":
        raise MalformedToken(f"Token field '{name}' is empty")
    if SEP in str(value):
        raise MalformedToken(f"Token field '{name}' must not contain '{SEP}'")


# ---------- linking tokens ----------

def _parse_config(raw: str) -> Optional[Dict[str, Any]]:
    """Tolerant: anything unparsable degrades to no configuration."""
    if not raw or not raw.strip():
        return None
    try:
        cfg = json.loads(unquote(raw))
    except (ValueError, RecursionError):
        return None
    return cfg if isinstance(cfg, dict) else None


def decode_link(text: str) -> LinkToken:
    parts = (text or "").strip().split(SEP)
    if not (3 <= len(parts) <= 5) or parts[0] != LINK_PREFIX:
        raise MalformedToken("Invalid QR code format")

    employer_id, contact = parts[1], parts[2]
    if not employer_id or not contact:
        raise MalformedToken("Invalid QR code format")

    employment_type = parts[3] if len(parts) >= 4 else None
    if employment_type is not None and employment_type not in EMPLOYMENT_TYPES:
        raise MalformedToken(f"Unknown employment type '{employment_type}'")

    config = _parse_config(parts[4]) if len(parts) == 5 else None
    return LinkToken(employer_id, contact, employment_type, config)


def encode_link(token: LinkToken) -> str:
    _check_field(token.employer_id, "employer_id")
    _check_field(token.contact, "contact")
    fields = [LINK_PREFIX, str(token.employer_id), token.contact]

    if token.config is not None and token.employment_type is None:
        raise MalformedToken("A link configuration needs an explicit employment type")
    if token.employment_type is not None:
        if token.employment_type not in EMPLOYMENT_TYPES:
            raise MalformedToken(f"Unknown employment type '{token.employment_type}'")
        fields.append(token.employment_type)
    if token.config is not None:
        fields.append(quote(json.dumps(token.config, separators=(",", ":")), safe=""))
    return SEP.join(fields)


# ---------- transaction tokens ----------

def decode_transaction(text: str) -> TxToken:
    parts = (text or "").strip().split(SEP)
    if len(parts) not in (5, 6) or parts[0] != TX_PREFIX:
        raise MalformedToken("Invalid QR code format")

    kind, employer_id, subject = parts[1], parts[2], parts[3]
    if kind not in KINDS:
        raise MalformedToken(f"Unknown transaction kind '{kind}'")
    if not employer_id or not subject:
        raise MalformedToken("Invalid QR code format")

    attendance_date = None
    if len(parts) == 6:
        try:
            attendance_date = date.fromisoformat(parts[4])
        except ValueError:
            raise MalformedToken(f"Invalid attendance date '{parts[4]}'")

    ts = parts[-1]
    if not (ts.isascii() and ts.isdigit()):
        raise MalformedToken("Invalid token timestamp")

    return TxToken(kind, employer_id, subject, int(ts), attendance_date)


def encode_transaction(token: TxToken) -> str:
    if token.kind not in KINDS:
        raise MalformedToken(f"Unknown transaction kind '{token.kind}'")
    _check_field(token.employer_id, "employer_id")
    _check_field(token.subject, "subject")
    if int(token.timestamp_ms) < 0:
        raise MalformedToken("Invalid token timestamp")

    fields = [TX_PREFIX, token.kind, str(token.employer_id), str(token.subject)]
    if token.attendance_date is not None:
        fields.append(token.attendance_date.isoformat())
    fields.append(str(int(token.timestamp_ms)))
    return SEP.join(fields)


def sniff(text: str) -> Optional[str]:
    """'link' | 'transaction' | None, routed on prefix the way the scanner does."""
    s = (text or "").strip()
    if s.startswith(TX_PREFIX + SEP):
        return "transaction"
    if s.startswith(LINK_PREFIX + SEP):
        return "link"
    return None
