from datetime import datetime, time, date
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, computed_field


class ShiftKind(str, Enum):
    NIGHT = "NIGHT"
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    UNSCHEDULED = "UNSCHEDULED"

    @property
    def tag(self) -> str:
        return _SHIFT_TAGS[self]

    @property
    def symbol(self) -> str:
        return _SHIFT_SYMBOLS.get(self, "")

    @property
    def label(self) -> str:
        return _SHIFT_LABELS[self]

    @property
    def sort_rank(self) -> int:
        return _SHIFT_RANKS[self]


_SHIFT_TAGS = {
    ShiftKind.NIGHT: "N",
    ShiftKind.MORNING: "M",
    ShiftKind.AFTERNOON: "A",
    ShiftKind.UNSCHEDULED: "U",
}

# Day symbols used in the monthly table. UNSCHEDULED has none.
_SHIFT_SYMBOLS = {
    ShiftKind.NIGHT: "ด",
    ShiftKind.MORNING: "ช",
    ShiftKind.AFTERNOON: "บ",
}

_SHIFT_LABELS = {
    ShiftKind.NIGHT: "เวรดึก",
    ShiftKind.MORNING: "เวรเช้า",
    ShiftKind.AFTERNOON: "เวรบ่าย",
    ShiftKind.UNSCHEDULED: "นอกเวลาราชการ",
}

_SHIFT_RANKS = {
    ShiftKind.NIGHT: 1,
    ShiftKind.MORNING: 2,
    ShiftKind.AFTERNOON: 3,
    ShiftKind.UNSCHEDULED: 4,
}


def format_hhmm(value: Optional[time]) -> str:
    if value is None:
        return ""
    return f"{value.hour:02d}:{value.minute:02d}"


class DayStatus(str, Enum):
    SICK_LEAVE = "ลาป่วย"
    MEETING = "ประชุม"
    VACATION = "VAC"


class Punch(BaseModel):
    model_config = ConfigDict(frozen=True)

    person_id: str
    person_name: str
    timestamp: datetime


class ShiftRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    person_id: str
    person_name: str
    shift_kind: ShiftKind
    day: date
    entry_time: Optional[time] = None
    exit_time: Optional[time] = None
    notes: str = ""

    @computed_field
    @property
    def shift_label(self) -> str:
        return self.shift_kind.label

    @computed_field
    @property
    def entry_hhmm(self) -> str:
        return format_hhmm(self.entry_time)

    @computed_field
    @property
    def exit_hhmm(self) -> str:
        return format_hhmm(self.exit_time)


class MonthlyAggregate(BaseModel):
    person_name: str
    day_to_shift_symbols: Dict[int, Set[str]]


class DayCell(BaseModel):
    day: int
    display: str
    is_zero: bool = False
    is_weekend: bool = False
    override: Optional[DayStatus] = None


class MonthlySummaryRow(BaseModel):
    person_name: str
    cells: List[DayCell]
    night_afternoon_count: int
    morning_afternoon_count: int
    zero_days: int
    overtime_score: int


class OverrideEntry(BaseModel):
    person_name: str
    day: int
    status: str


class MonthlySummaryRequest(BaseModel):
    year: int
    month: int
    public_holidays: int = 0
    overrides: List[OverrideEntry] = []


class StoreStatus(BaseModel):
    punch_count: int
    last_updated: Optional[datetime] = None
    last_error: Optional[str] = None
