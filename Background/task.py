from datetime import date
from typing import List
import logging

from fastapi import BackgroundTasks, FastAPI, Query
from fastapi.responses import JSONResponse

from attendance import aggregate_month, match_shifts_for_day, set_override, summarize_month
from models.schema import MonthlyAggregate, MonthlySummaryRequest, ShiftRecord, StoreStatus
from utils.helper import get_all_punches, get_store_status, record_fetch_error, replace_punches
from utils.sheet import PrivateSheetError, SheetFetchError, fetch_punches

app = FastAPI()


@app.get("/api/health")
def health():
    return {"ok": True}


@app.post("/refresh")
def request_refresh(background_tasks: BackgroundTasks):
    background_tasks.add_task(refresh_punches)
    return {"status": "Refresh scheduled, processing in background."}


@app.get("/status", response_model=StoreStatus)
def status():
    return get_store_status()


@app.get("/attendance/daily", response_model=List[ShiftRecord])
def daily_attendance(day: date):
    return match_shifts_for_day(get_all_punches(), day)


@app.get("/attendance/monthly", response_model=List[MonthlyAggregate])
def monthly_attendance(year: int = Query(..., ge=1, le=9999), month: int = Query(..., ge=1, le=12)):
    return aggregate_month(get_all_punches(), year, month)


@app.post("/attendance/monthly/summary")
def monthly_summary(request: MonthlySummaryRequest):
    try:
        overrides = {}
        for entry in request.overrides:
            set_override(overrides, entry.person_name, entry.day, entry.status)
        aggregates = aggregate_month(get_all_punches(), request.year, request.month)
        rows = summarize_month(aggregates, request.year, request.month, request.public_holidays, overrides)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return [row.model_dump(mode="json") for row in rows]


def refresh_punches() -> bool:
    logging.info("Refreshing punches from the attendance sheet")
    try:
        punches = fetch_punches()
    except PrivateSheetError as e:
        logging.error(f"Attendance sheet is private, keeping previous punches: {e}")
        record_fetch_error(f"PRIVATE_SHEET: {e}")
        return False
    except SheetFetchError as e:
        logging.error(f"Could not fetch attendance sheet, keeping previous punches: {e}")
        record_fetch_error(str(e))
        return False
    replace_punches(punches)
    logging.info(f"Punch store refreshed with {len(punches)} punches.")
    return True
