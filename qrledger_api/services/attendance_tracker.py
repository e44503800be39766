# qrledger_api/services/attendance_tracker.py
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, time as _time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from flask import current_app

from qrledger_api.common.errors import AlreadyComplete, ConsistencyViolation, LeaveConflict
from qrledger_api.extensions import db
from qrledger_api.models.attendance import (
    ABSENT,
    LEAVE_STATES,
    PRESENT_COMPLETE,
    PRESENT_PENDING,
    AttendanceRecord,
)
from qrledger_api.models.employment import Employment

log = logging.getLogger(__name__)

UNMARKED = "unmarked"   # today/future with no row: not yet absent


@dataclass(frozen=True)
class Transition:
    record: AttendanceRecord
    from_state: str
    to_state: str

    @property
    def first_of_day(self) -> bool:
        return self.from_state == ABSENT


def _hours_between(start: datetime, end: datetime) -> Decimal:
    secs = Decimal(str((end - start).total_seconds()))
    return (secs / Decimal(3600)).quantize(Decimal("0.01"))


def _shift_start() -> _time:
    raw = current_app.config.get("ATTENDANCE_BACKFILL_SHIFT_START", "09:00")
    return _time.fromisoformat(raw)


def _hours_per_day(emp: Employment) -> Decimal:
    if emp.working_hours_per_day:
        return Decimal(str(emp.working_hours_per_day))
    return Decimal(str(current_app.config.get("DEFAULT_HOURS_PER_DAY", 8)))


def get_record(emp: Employment, day: date) -> Optional[AttendanceRecord]:
    return AttendanceRecord.query.filter_by(employment_id=emp.id, work_date=day).first()


def status_of(record: Optional[AttendanceRecord], day: date, today: date) -> str:
    """Absent is derived at read time: no row and the date is in the past."""
    if record is not None:
        return record.status
    return ABSENT if day < today else UNMARKED


def status_on(emp: Employment, day: date, today: date) -> str:
    return status_of(get_record(emp, day), day, today)


# ---------- token-driven transitions ----------

def record_scan(emp: Employment, now: datetime, day: Optional[date] = None) -> Transition:
    """
    Apply one attendance-mark redemption.

    Live scans (no date, or the token's date is today) clock in on the first
    scan and clock out on the second. Backfill scans (a past date) write a
    complete day of the employment's usual length. Never commits.
    """
    today = now.date()
    day = day or today
    if day > today:
        raise ConsistencyViolation("Attendance cannot be marked for a future date")
    backfill = day < today

    row = get_record(emp, day)
    if row is not None and row.status in LEAVE_STATES:
        raise LeaveConflict(f"{day.isoformat()} is already marked as {row.status.replace('_', ' ')}")
    if row is not None and row.status == PRESENT_COMPLETE:
        raise AlreadyComplete("Attendance already completed for this date")

    if row is None:
        row = AttendanceRecord(
            employment_id=emp.id,
            employer_id=emp.employer_id,
            employee_user_id=emp.employee_user_id,
            work_date=day,
        )
        db.session.add(row)
        from_state = ABSENT
        if backfill:
            login = datetime.combine(day, _shift_start())
            _complete(row, login, login + timedelta(hours=float(_hours_per_day(emp))))
        else:
            row.status = PRESENT_PENDING
            row.login_time = now
    else:
        from_state = row.status
        if backfill:
            _complete(row, row.login_time, row.login_time + timedelta(hours=float(_hours_per_day(emp))))
        else:
            if now <= row.login_time:
                raise ConsistencyViolation("Logout time must be after login time")
            _complete(row, row.login_time, now)

    row.scanned_at = now
    db.session.flush()
    log.info("[attendance] employment=%s %s %s -> %s", emp.id, day.isoformat(), from_state, row.status)
    return Transition(row, from_state, row.status)


def _complete(row: AttendanceRecord, login: datetime, logout: datetime):
    row.status = PRESENT_COMPLETE
    row.login_time = login
    row.logout_time = logout
    row.total_hours = _hours_between(login, logout)


# ---------- employee direct writes ----------

def mark_leave(emp: Employment, day: date, kind: str) -> AttendanceRecord:
    """Employee-submitted leave; last write wins and clears any present data."""
    if not emp.is_active:
        raise ConsistencyViolation("Employee is no longer linked to this employer")
    if kind not in LEAVE_STATES:
        raise ConsistencyViolation(f"leave kind must be one of {', '.join(LEAVE_STATES)}")
    row = get_record(emp, day)
    if row is None:
        row = AttendanceRecord(
            employment_id=emp.id,
            employer_id=emp.employer_id,
            employee_user_id=emp.employee_user_id,
            work_date=day,
        )
        db.session.add(row)
    row.status = kind
    row.login_time = None
    row.logout_time = None
    row.total_hours = None
    db.session.commit()
    return row


# ---------- reads ----------

def _month_bounds(year: int, month: int):
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def month_records(emp: Employment, year: int, month: int) -> Dict[date, AttendanceRecord]:
    start, end = _month_bounds(year, month)
    rows = (
        AttendanceRecord.query
        .filter(AttendanceRecord.employment_id == emp.id)
        .filter(AttendanceRecord.work_date >= start, AttendanceRecord.work_date <= end)
        .all()
    )
    return {r.work_date: r for r in rows}


def month_view(emp: Employment, year: int, month: int, today: date) -> List[dict]:
    start, end = _month_bounds(year, month)
    rows = month_records(emp, year, month)
    out = []
    d = start
    while d <= end:
        r = rows.get(d)
        item = r.to_dict() if r else {"date": d.isoformat(), "login_time": None, "logout_time": None, "total_hours": None}
        item["status"] = status_of(r, d, today)
        out.append(item)
        d += timedelta(days=1)
    return out


def hours_worked(emp: Employment, year: int, month: int) -> Decimal:
    return sum(
        (Decimal(str(r.total_hours)) for r in month_records(emp, year, month).values()
         if r.status == PRESENT_COMPLETE and r.total_hours is not None),
        Decimal("0"),
    )


def month_summary(emp: Employment, year: int, month: int, today: date) -> dict:
    days = month_view(emp, year, month, today)
    counts = {PRESENT_COMPLETE: 0, PRESENT_PENDING: 0, "leave": 0, "sick_leave": 0, ABSENT: 0}
    for d in days:
        if d["status"] in counts:
            counts[d["status"]] += 1
    return {
        "year": year,
        "month": month,
        "present_days": counts[PRESENT_COMPLETE] + counts[PRESENT_PENDING],
        "pending_logout_days": counts[PRESENT_PENDING],
        "leave_days": counts["leave"],
        "sick_leave_days": counts["sick_leave"],
        "absent_days": counts[ABSENT],
        "total_hours": float(hours_worked(emp, year, month)),
    }
