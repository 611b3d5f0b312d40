import logging
from typing import NoReturn, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import Response

from config import get_settings
from database import Database, ensure_schema
from errors import ConflictFailure, StorageFailure, ValidationFailure
from periods import LocalCalendar, Month
from schemas import (
    CategoryIn,
    CategoryOut,
    MonthlyCategorySummary,
    MonthlySeriesPoint,
    MonthTotals,
    SaveResult,
    TransactionRow,
)
from services import CategoryService, CSVService, SummaryService, TransactionService

logger = logging.getLogger(__name__)

app = FastAPI(title="Money Tracker")


@app.on_event("startup")
def startup_event():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    db = Database(settings.database_url)
    ensure_schema(db)
    CategoryService(db).ensure_seeded()
    app.state.database = db
    logger.info(f"startup: database={settings.database_url}")


@app.on_event("shutdown")
def shutdown_event():
    db: Optional[Database] = getattr(app.state, "database", None)
    if db is not None:
        db.close()
        logger.info("shutdown: database closed")


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_calendar() -> LocalCalendar:
    return LocalCalendar(get_settings().zone)


def month_from_param(value: str) -> Month:
    try:
        return Month.parse(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, ConflictFailure):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, ValidationFailure):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Database = Depends(get_database)):
    try:
        return CategoryService(db).list_all()
    except StorageFailure as exc:
        _raise_http(exc)


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Database = Depends(get_database)):
    try:
        return CategoryService(db).create(data.name)
    except (ValidationFailure, ConflictFailure, StorageFailure) as exc:
        _raise_http(exc)


@app.post("/api/categories/seed")
def seed_categories(db: Database = Depends(get_database)):
    try:
        return {"inserted": CategoryService(db).ensure_seeded()}
    except StorageFailure as exc:
        _raise_http(exc)


@app.get("/api/transactions", response_model=list[TransactionRow])
def list_transactions(
    month: Optional[str] = None,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    service = TransactionService(db, calendar)
    try:
        if month:
            return service.list_for_month(month_from_param(month))
        return service.list_all()
    except (ValidationFailure, StorageFailure) as exc:
        _raise_http(exc)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionRow)
def upsert_transaction(
    transaction_id: str,
    row: TransactionRow,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    try:
        return TransactionService(db, calendar).upsert(
            row.model_copy(update={"id": transaction_id})
        )
    except (ValidationFailure, StorageFailure) as exc:
        _raise_http(exc)


@app.post("/api/transactions/batch", response_model=SaveResult)
def save_transactions(
    rows: list[TransactionRow],
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    try:
        return TransactionService(db, calendar).save_many(rows)
    except StorageFailure as exc:
        _raise_http(exc)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    try:
        TransactionService(db, calendar).delete(transaction_id)
    except StorageFailure as exc:
        _raise_http(exc)
    return Response(status_code=204)


@app.get("/api/summary", response_model=list[MonthlyCategorySummary])
def monthly_summary(
    month: str,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    try:
        return SummaryService(db, calendar).monthly_summary(month_from_param(month))
    except (ValidationFailure, StorageFailure) as exc:
        _raise_http(exc)


@app.get("/api/series", response_model=list[MonthlySeriesPoint])
def monthly_series(
    end: str,
    count: Optional[int] = None,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    months_back = count if count is not None else get_settings().series_months
    try:
        return SummaryService(db, calendar).monthly_series(
            month_from_param(end), months_back
        )
    except (ValidationFailure, StorageFailure) as exc:
        _raise_http(exc)


@app.get("/api/totals", response_model=MonthTotals)
def month_totals(
    month: str,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    try:
        return SummaryService(db, calendar).month_totals(month_from_param(month))
    except (ValidationFailure, StorageFailure) as exc:
        _raise_http(exc)


@app.get("/api/transactions/export.csv")
def export_csv(
    month: Optional[str] = None,
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    target = month_from_param(month) if month else None
    try:
        content = CSVService(db, calendar).export(target)
    except (ValidationFailure, StorageFailure) as exc:
        _raise_http(exc)
    suffix = target.label if target else "all"
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="transactions-{suffix}.csv"'
        },
    )


@app.post("/api/transactions/import", response_model=SaveResult)
async def import_csv(
    file: UploadFile = File(...),
    db: Database = Depends(get_database),
    calendar: LocalCalendar = Depends(get_calendar),
):
    raw = await file.read()
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8") from exc
    try:
        result = CSVService(db, calendar).commit(content)
    except StorageFailure as exc:
        _raise_http(exc)
    logger.info(f"csv_import: saved={result.saved} skipped={result.skipped}")
    return result
