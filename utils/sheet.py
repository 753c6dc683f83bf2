import io
import logging
import os
import re
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import quote

import pandas as pd
import requests

from models.schema import Punch

SHEET_ID = os.getenv("ATTENDANCE_SHEET_ID", "19RGdbc0CtX7nOPDKYgMwUDhnu-W85RA_LoYgdD7xfqs")
SHEET_NAME = os.getenv("ATTENDANCE_SHEET_NAME", "แสดงผล")
FETCH_TIMEOUT = float(os.getenv("ATTENDANCE_FETCH_TIMEOUT", "30"))

BUDDHIST_ERA_OFFSET = 543
BUDDHIST_ERA_THRESHOLD = 2400
EPOCH = datetime(1970, 1, 1)
REQUIRED_COLUMNS = 4


class SheetFetchError(Exception):
    pass


class PrivateSheetError(SheetFetchError):
    """The sheet answered, but only to tell us it is not shared publicly."""


def build_endpoints(sheet_id: str = SHEET_ID, sheet_name: str = SHEET_NAME,
                    cache_buster: Optional[int] = None) -> List[Tuple[str, str]]:
    if cache_buster is None:
        cache_buster = int(datetime.now().timestamp() * 1000)
    encoded_name = quote(sheet_name, safe="")
    base = f"https://docs.google.com/spreadsheets/d/{sheet_id}"
    return [
        ("Sheet Export", f"{base}/export?format=csv&sheet={encoded_name}&_t={cache_buster}"),
        ("Sheet Gviz", f"{base}/gviz/tq?tqx=out:csv&sheet={encoded_name}&_t={cache_buster}"),
    ]


def _clock_parts(time_str: str) -> Tuple[int, int, int]:
    parts = time_str.split(":") if time_str else []
    values = []
    for i in range(3):
        try:
            values.append(int(parts[i]))
        except (IndexError, ValueError):
            values.append(0)
    return values[0], values[1], values[2]


def _parse_iso(date_str: str, time_str: str) -> Optional[datetime]:
    if date_str.endswith("Z"):
        date_str = date_str[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(date_str)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    if time_str and ":" in time_str:
        hour, minute, second = _clock_parts(time_str)
        try:
            parsed = parsed.replace(hour=hour, minute=minute, second=second, microsecond=0)
        except ValueError:
            return None
    return parsed


def parse_timestamp(date_str: str, time_str: str) -> Optional[datetime]:
    """
    Parse the sheet's date and time columns into a naive datetime.

    Dates come either as ISO strings or as ``a/b/year`` (``-`` also accepted).
    If ``a`` exceeds 12 it is the day, else if ``b`` exceeds 12 it is the day,
    otherwise the date is read day-first. Years above 2400 are Buddhist Era.
    Returns None for anything that does not make a real date after the epoch.
    """
    if not date_str:
        return None
    date_str = date_str.strip()
    time_str = time_str.strip() if time_str else ""

    if "T" in date_str or ("-" in date_str and len(date_str) >= 10):
        parsed = _parse_iso(date_str, time_str)
        if parsed is not None:
            return parsed if parsed > EPOCH else None

    parts = re.split(r"[/\-]", date_str)
    if len(parts) != 3:
        return None
    try:
        first, second, year = (int(p) for p in parts)
    except ValueError:
        return None

    if year > BUDDHIST_ERA_THRESHOLD:
        year -= BUDDHIST_ERA_OFFSET

    if first > 12:
        day, month = first, second
    elif second > 12:
        day, month = second, first
    else:
        day, month = first, second

    hour, minute, sec = _clock_parts(time_str)
    try:
        parsed = datetime(year, month, day, hour, minute, sec)
    except ValueError:
        return None
    return parsed if parsed > EPOCH else None


def read_rows(text: str) -> List[List[str]]:
    """Data rows of the CSV export (header dropped), every cell stripped."""
    if not text.strip():
        return []
    # Columns are positional; the header row only fixes the width.
    width = len(pd.read_csv(io.StringIO(text), header=None, nrows=1, dtype=str, engine="python").columns)
    frame = pd.read_csv(
        io.StringIO(text),
        header=None,
        index_col=False,
        dtype=str,
        keep_default_na=False,
        engine="python",
        on_bad_lines=lambda fields: fields[:width],
    )
    frame = frame.iloc[1:].fillna("").apply(lambda col: col.str.strip())
    return frame.values.tolist()


def rows_to_punches(rows: List[List[str]]) -> List[Punch]:
    punches = []
    for row in rows:
        if len(row) < REQUIRED_COLUMNS:
            continue
        date_str, time_str, card_num, name = row[:REQUIRED_COLUMNS]
        if not date_str or not name or date_str.lower() == "date":
            continue
        timestamp = parse_timestamp(date_str, time_str)
        if timestamp is None:
            logging.debug(f"Dropping row with unparseable timestamp: {date_str!r} {time_str!r}")
            continue
        punches.append(Punch(person_id=card_num, person_name=name, timestamp=timestamp))
    return punches


def parse_punches(text: str) -> List[Punch]:
    return rows_to_punches(read_rows(text))


def looks_like_login_page(text: str) -> bool:
    return "<!DOCTYPE html" in text or "<html" in text or "Sign in" in text


def fetch_sheet_text(url: str, timeout: float = FETCH_TIMEOUT) -> str:
    response = requests.get(url, timeout=timeout)
    if response.status_code in (401, 403):
        raise PrivateSheetError(f"Sheet is not shared publicly (HTTP {response.status_code})")
    if not response.ok:
        raise SheetFetchError(f"HTTP error! status: {response.status_code}")
    response.encoding = response.encoding or "utf-8"
    text = response.text
    if looks_like_login_page(text):
        raise PrivateSheetError("Sheet answered with a sign-in page")
    return text


def fetch_punches(endpoints: Optional[List[Tuple[str, str]]] = None) -> List[Punch]:
    last_error: Optional[Exception] = None

    for name, url in endpoints or build_endpoints():
        logging.info(f"Attempting to fetch via: {name}")
        try:
            rows = read_rows(fetch_sheet_text(url))
        except PrivateSheetError:
            logging.error(f"{name} reports the sheet as private")
            raise
        except (requests.RequestException, SheetFetchError, pd.errors.ParserError) as e:
            logging.error(f"{name} failed: {e}")
            last_error = e
            continue

        punches = rows_to_punches(rows)
        if not punches and rows:
            logging.warning(f"Parsed {len(rows)} rows via {name} but found no valid punches, trying next endpoint")
            continue

        logging.info(f"Successfully parsed {len(punches)} punches via {name}")
        return sorted(punches, key=lambda p: p.timestamp)

    if last_error is not None:
        raise SheetFetchError(f"All fetch attempts failed, last error: {last_error}") from last_error
    raise SheetFetchError("All fetch attempts failed")
