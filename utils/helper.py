from typing import Optional, List
from datetime import date, datetime, time, timedelta

from models.schema import Punch, StoreStatus

# In-memory punch store, replaced wholesale on every refresh
punch_store: List[Punch] = []
store_state = {
    "last_updated": None,
    "last_error": None,
}


def minutes_of_day(timestamp: datetime) -> int:
    return timestamp.hour * 60 + timestamp.minute


def is_time_in_range(timestamp: datetime, start_h: int, start_m: int, end_h: int, end_m: int) -> bool:
    """Inclusive minute-of-day check. A start after the end wraps past midnight."""
    check = minutes_of_day(timestamp)
    start = start_h * 60 + start_m
    end = end_h * 60 + end_m

    if start <= end:
        return start <= check <= end
    return check >= start or check <= end


def is_same_day(timestamp: datetime, day: date) -> bool:
    return timestamp.date() == day


def previous_day(day: date) -> Optional[date]:
    """None at the start of the calendar, where no earlier day exists."""
    try:
        return day - timedelta(days=1)
    except OverflowError:
        return None


def next_day(day: date) -> Optional[date]:
    try:
        return day + timedelta(days=1)
    except OverflowError:
        return None


def to_clock_time(timestamp: datetime) -> time:
    return time(timestamp.hour, timestamp.minute)


def replace_punches(punches: List[Punch]) -> None:
    punch_store[:] = list(punches)
    store_state["last_updated"] = datetime.now()
    store_state["last_error"] = None


def record_fetch_error(message: str) -> None:
    store_state["last_error"] = message


def get_all_punches() -> List[Punch]:
    return list(punch_store)


def get_store_status() -> StoreStatus:
    return StoreStatus(
        punch_count=len(punch_store),
        last_updated=store_state["last_updated"],
        last_error=store_state["last_error"],
    )


def clear_store() -> None:
    punch_store.clear()
    store_state["last_updated"] = None
    store_state["last_error"] = None
