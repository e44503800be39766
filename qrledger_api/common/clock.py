# qrledger_api/common/clock.py
from datetime import datetime, date, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime in the ledger is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def epoch_ms(dt: datetime) -> int:
    return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)


def fmt_day(dt) -> str:
    """dd/mm/yyyy, the way statements print dates."""
    return dt.strftime("%d/%m/%Y") if dt else ""
