import logging
from calendar import monthrange
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pythainlp.util import collate

from models.schema import (
    DayCell,
    DayStatus,
    MonthlyAggregate,
    MonthlySummaryRow,
    Punch,
    ShiftKind,
    ShiftRecord,
)
from utils.helper import is_same_day, is_time_in_range, next_day, previous_day, to_clock_time

# Shift windows as (day offset from the target day, (start_h, start_m, end_h, end_m)).
# Bounds are inclusive at minute granularity.
NIGHT_ENTRY_WINDOWS = [(-1, (22, 30, 23, 59)), (0, (0, 0, 0, 45))]
NIGHT_EXIT_WINDOWS = [(0, (8, 0, 9, 15))]
MORNING_ENTRY_WINDOWS = [(0, (7, 30, 8, 45))]
MORNING_EXIT_WINDOWS = [(0, (16, 0, 17, 15))]
AFTERNOON_ENTRY_WINDOWS = [(0, (15, 30, 16, 45))]
AFTERNOON_EXIT_WINDOWS = [(0, (23, 50, 23, 59)), (1, (0, 0, 1, 15))]
PREVIOUS_AFTERNOON_ENTRY_WINDOWS = [(-1, (15, 30, 16, 45))]

# Pass order decides which shift wins a contested punch
SHIFT_PASSES = [
    (ShiftKind.NIGHT, NIGHT_ENTRY_WINDOWS, NIGHT_EXIT_WINDOWS),
    (ShiftKind.MORNING, MORNING_ENTRY_WINDOWS, MORNING_EXIT_WINDOWS),
    (ShiftKind.AFTERNOON, AFTERNOON_ENTRY_WINDOWS, AFTERNOON_EXIT_WINDOWS),
]

NIGHT_AFTERNOON = ShiftKind.NIGHT.symbol + ShiftKind.AFTERNOON.symbol
MORNING_AFTERNOON = ShiftKind.MORNING.symbol + ShiftKind.AFTERNOON.symbol
CLEAR_OVERRIDE = "0"

Window = Tuple[int, int, int, int]


def in_windows(timestamp: datetime, day: date, windows: List[Tuple[int, Window]]) -> bool:
    for offset, window in windows:
        if offset < 0:
            window_day = previous_day(day)
        elif offset > 0:
            window_day = next_day(day)
        else:
            window_day = day
        if window_day is not None and is_same_day(timestamp, window_day) and is_time_in_range(timestamp, *window):
            return True
    return False


def looks_like_afternoon_exit(punches: List[Punch], day: date) -> bool:
    """
    True when an after-midnight punch on ``day`` is better read as the exit of
    yesterday's afternoon shift: the person clocked into an afternoon shift the
    day before and never clocked out of a night shift this morning.
    """
    has_yesterday_afternoon_in = any(
        in_windows(p.timestamp, day, PREVIOUS_AFTERNOON_ENTRY_WINDOWS) for p in punches
    )
    has_today_night_out = any(in_windows(p.timestamp, day, NIGHT_EXIT_WINDOWS) for p in punches)
    return has_yesterday_afternoon_in and not has_today_night_out


def find_unused(punches: List[Punch], used: Set[int], day: date, windows) -> Optional[int]:
    for idx, punch in enumerate(punches):
        if idx not in used and in_windows(punch.timestamp, day, windows):
            return idx
    return None


def find_night_entry(punches: List[Punch], used: Set[int], day: date) -> Optional[int]:
    ambiguous = looks_like_afternoon_exit(punches, day)
    for idx, punch in enumerate(punches):
        if idx in used or not in_windows(punch.timestamp, day, NIGHT_ENTRY_WINDOWS):
            continue
        if ambiguous and is_same_day(punch.timestamp, day):
            logging.debug(
                f"Skipping night entry {punch.timestamp} for {punch.person_name}: "
                f"treated as afternoon exit of {previous_day(day)}"
            )
            continue
        return idx
    return None


def build_record(person_id: str, person_name: str, kind: ShiftKind, day: date,
                 entry: Punch, exit_punch: Optional[Punch]) -> ShiftRecord:
    return ShiftRecord(
        id=f"{person_id}-{kind.tag}-{day.day}",
        person_id=person_id,
        person_name=person_name,
        shift_kind=kind,
        day=day,
        entry_time=to_clock_time(entry.timestamp),
        exit_time=to_clock_time(exit_punch.timestamp) if exit_punch else None,
        notes="",
    )


def match_person_shifts(person_name: str, punches: List[Punch], day: date) -> List[ShiftRecord]:
    punches = sorted(punches, key=lambda p: p.timestamp)
    person_id = punches[0].person_id
    used: Set[int] = set()
    records = []

    for kind, entry_windows, exit_windows in SHIFT_PASSES:
        if kind == ShiftKind.NIGHT:
            entry_idx = find_night_entry(punches, used, day)
        else:
            entry_idx = find_unused(punches, used, day, entry_windows)
        if entry_idx is None:
            continue
        used.add(entry_idx)

        exit_idx = find_unused(punches, used, day, exit_windows)
        if exit_idx is not None:
            used.add(exit_idx)

        records.append(build_record(
            person_id,
            person_name,
            kind,
            day,
            punches[entry_idx],
            punches[exit_idx] if exit_idx is not None else None,
        ))

    return records


def match_shifts_for_day(punches: Iterable[Punch], day: date) -> List[ShiftRecord]:
    window_days = (previous_day(day), day, next_day(day))
    by_person: Dict[str, List[Punch]] = {}
    for punch in punches:
        if punch.timestamp.date() in window_days:
            by_person.setdefault(punch.person_name, []).append(punch)

    records: List[ShiftRecord] = []
    for name, person_punches in by_person.items():
        records.extend(match_person_shifts(name, person_punches, day))

    return sorted(records, key=lambda r: r.shift_kind.sort_rank)


def aggregate_month(punches: List[Punch], year: int, month: int) -> List[MonthlyAggregate]:
    days_in_month = monthrange(year, month)[1]
    table: Dict[str, Dict[int, Set[str]]] = {}

    for punch in punches:
        if punch.person_name not in table:
            table[punch.person_name] = {d: set() for d in range(1, days_in_month + 1)}

    # Every day is matched against the full history; night and afternoon
    # shifts borrow punches from neighbouring months.
    for d in range(1, days_in_month + 1):
        for record in match_shifts_for_day(punches, date(year, month, d)):
            days = table.setdefault(record.person_name, {n: set() for n in range(1, days_in_month + 1)})
            days[d].add(record.shift_kind.symbol)

    logging.info(f"Aggregated {len(table)} people for {year}-{month:02d}")
    return [
        MonthlyAggregate(person_name=name, day_to_shift_symbols=table[name])
        for name in collate(table)
    ]


def day_content(symbols: Set[str]) -> str:
    night = ShiftKind.NIGHT.symbol in symbols
    morning = ShiftKind.MORNING.symbol in symbols
    afternoon = ShiftKind.AFTERNOON.symbol in symbols

    if night and afternoon:
        return NIGHT_AFTERNOON
    if morning and afternoon:
        return MORNING_AFTERNOON
    if morning:
        return ShiftKind.MORNING.symbol
    if afternoon:
        return ShiftKind.AFTERNOON.symbol
    if night:
        return ShiftKind.NIGHT.symbol
    return ""


def set_override(overrides: Dict[Tuple[str, int], DayStatus], person_name: str, day: int, status: str) -> None:
    key = (person_name, day)
    if status == CLEAR_OVERRIDE:
        overrides.pop(key, None)
        return
    try:
        overrides[key] = DayStatus(status)
    except ValueError:
        raise ValueError(f"Unknown day status: {status!r}") from None


def summarize_person(aggregate: MonthlyAggregate, year: int, month: int, public_holidays: int,
                     overrides: Dict[Tuple[str, int], DayStatus]) -> MonthlySummaryRow:
    days_in_month = monthrange(year, month)[1]
    night_afternoon = morning_afternoon = zero_days = 0
    cells = []

    for d in range(1, days_in_month + 1):
        override = overrides.get((aggregate.person_name, d))
        content = day_content(aggregate.day_to_shift_symbols.get(d, set()))
        is_zero = False

        if override:
            display = override.value
        elif content:
            display = content
            if content == NIGHT_AFTERNOON:
                night_afternoon += 1
            elif content == MORNING_AFTERNOON:
                morning_afternoon += 1
        else:
            display = "0"
            is_zero = True
            zero_days += 1

        cells.append(DayCell(
            day=d,
            display=display,
            is_zero=is_zero,
            is_weekend=date(year, month, d).weekday() >= 5,
            override=override,
        ))

    return MonthlySummaryRow(
        person_name=aggregate.person_name,
        cells=cells,
        night_afternoon_count=night_afternoon,
        morning_afternoon_count=morning_afternoon,
        zero_days=zero_days,
        overtime_score=(public_holidays - zero_days) + night_afternoon + morning_afternoon,
    )


def summarize_month(aggregates: List[MonthlyAggregate], year: int, month: int, public_holidays: int = 0,
                    overrides: Optional[Dict[Tuple[str, int], DayStatus]] = None) -> List[MonthlySummaryRow]:
    if public_holidays < 0:
        raise ValueError(f"public_holidays must not be negative, got {public_holidays}")
    overrides = overrides or {}
    return [summarize_person(a, year, month, public_holidays, overrides) for a in aggregates]
