"""Weekly payout cycle window and transfer idempotency keys"""

from datetime import datetime, timedelta, timezone
from payout_gateway.domain.models import CycleWindow
from payout_gateway.utils.date_utils import ensure_utc

IST = timezone(timedelta(hours=5, minutes=30))


def offset_from_minutes(minutes: int) -> timezone:
    """Fixed UTC offset; never consults the host timezone database"""
    return timezone(timedelta(minutes=minutes))


def week_window(now: datetime, utc_offset: timezone = IST) -> CycleWindow:
    """
    Compute the most recently closed weekly cycle for `now`.

    The cycle runs from last Monday 00:00 local to this Monday 00:00 local
    (exclusive), where "local" is the fixed `utc_offset`. Both bounds are
    returned as aware UTC datetimes.

    The cycle key is the local calendar date of the Sunday that closes the
    window (six days after cycle_start), formatted YYYY-MM-DD.

    Example (offset +05:30):
        now = Wed 2024-05-15 10:00 local
        cycle_start = Mon 2024-05-06 00:00 local = 2024-05-05T18:30Z
        cycle_end   = Mon 2024-05-13 00:00 local = 2024-05-12T18:30Z
        cycle_key   = "2024-05-12"
    """
    local_now = ensure_utc(now).astimezone(utc_offset)
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    # weekday(): Monday == 0
    this_monday = local_midnight - timedelta(days=local_midnight.weekday())
    cycle_start = this_monday - timedelta(days=7)
    closing_sunday = cycle_start + timedelta(days=6)

    return CycleWindow(
        cycle_start=cycle_start.astimezone(timezone.utc),
        cycle_end=this_monday.astimezone(timezone.utc),
        cycle_key=closing_sunday.date().isoformat(),
    )


def build_idempotency_key(cycle_key: str, user_id: str, bank_account_id: str) -> str:
    """Deterministic key allowing at most one transfer per (cycle, user, bank account)"""
    return f"payout-transfer:{cycle_key}:{user_id}:{bank_account_id}"
