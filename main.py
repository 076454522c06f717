import json
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from amounts import format_currency, format_percentage, parse_amount
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import SessionLocal, init_db
from ledger import BalanceSummary, LedgerError, NotFound
from models import TransactionType
from periods import resolve_period
from scheduler import SchedulerManager
from schemas import BalanceOut, CategoryHistoryOut, TransactionRecord
from services import LedgerService

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Pay-Period Ledger", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def require_csrf(token: Optional[str]) -> None:
    if not validate_csrf_token(token):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def ledger_http_error(exc: LedgerError) -> HTTPException:
    status_code = 404 if isinstance(exc, NotFound) else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def transaction_payload(txn: TransactionRecord) -> dict[str, Any]:
    sign = "+" if txn.type == TransactionType.income else "-"
    payload = txn.to_wire()
    payload["amount_display"] = f"{sign}{format_currency(txn.amount)}"
    return payload


def balance_payload(summary: BalanceSummary) -> BalanceOut:
    return BalanceOut(
        balance=summary.balance,
        total_income=summary.total_income,
        total_expenses=summary.total_expenses,
        balance_display=format_currency(summary.balance),
        total_income_display=format_currency(summary.total_income),
        total_expenses_display=format_currency(summary.total_expenses),
    )


@app.get("/api/csrf-token")
def api_csrf_token():
    return {"csrf_token": generate_csrf_token()}


@app.get("/api/balance", response_model=BalanceOut)
def api_balance(db: Session = Depends(get_db)):
    return balance_payload(LedgerService(db).compute_balance())


@app.get("/api/transactions")
def api_transactions(db: Session = Depends(get_db)):
    items = LedgerService(db).list_transactions()
    return {"items": [transaction_payload(txn) for txn in items]}


@app.post("/transactions", status_code=201)
def create_transaction(
    csrf_token: str = Form(...),
    description: str = Form(""),
    amount: str = Form(""),
    type: str = Form(...),
    category: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    require_csrf(csrf_token)
    try:
        parsed_amount = parse_amount(amount)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    service = LedgerService(db)
    try:
        txn = service.record_transaction(
            description, parsed_amount, type, category, date or None
        )
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return {
        "transaction": transaction_payload(txn),
        "balance": balance_payload(service.compute_balance()),
    }


@app.post("/transactions/{transaction_id}/edit")
def edit_transaction(
    transaction_id: int,
    csrf_token: str = Form(...),
    description: str = Form(""),
    amount: str = Form(""),
    db: Session = Depends(get_db),
):
    require_csrf(csrf_token)
    try:
        parsed_amount = parse_amount(amount)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    service = LedgerService(db)
    try:
        txn = service.edit_transaction(transaction_id, description, parsed_amount)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return {
        "transaction": transaction_payload(txn),
        "balance": balance_payload(service.compute_balance()),
    }


@app.post("/transactions/{transaction_id}/delete")
def delete_transaction(
    transaction_id: int,
    csrf_token: str = Form(...),
    db: Session = Depends(get_db),
):
    require_csrf(csrf_token)
    try:
        LedgerService(db).delete_transaction(transaction_id)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return Response(status_code=204)


@app.post("/balance", response_model=BalanceOut)
def set_balance(
    csrf_token: str = Form(...),
    balance: str = Form(""),
    db: Session = Depends(get_db),
):
    require_csrf(csrf_token)
    try:
        asserted = parse_amount(balance, allow_negative=True)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Please enter a valid number") from exc
    try:
        summary = LedgerService(db).set_balance(asserted)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return balance_payload(summary)


@app.get("/api/categories/{category}/history", response_model=CategoryHistoryOut)
def api_category_history(
    category: str, request: Request, db: Session = Depends(get_db)
):
    try:
        start = resolve_period(request.query_params.get("period"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    report, navigation = LedgerService(db).category_history(category, start)
    summary = (
        f"Total Spent: {format_currency(report.total)} "
        f"({format_percentage(report.total_percentage)})"
    )
    return CategoryHistoryOut(
        category=category,
        period_start=report.period.start.isoformat(),
        period_end=report.period.end.isoformat(),
        label=report.period.label,
        has_previous=navigation.has_previous,
        has_next=navigation.has_next,
        entries=[transaction_payload(txn) for txn in report.entries],
        total=report.total,
        total_percentage=report.total_percentage,
        initial_balance=report.initial_balance,
        summary=summary,
    )


@app.get("/api/countdown")
def api_countdown():
    countdown = scheduler_manager.state.current()
    return {
        "days": countdown.days,
        "level": countdown.level,
        "next_payday": countdown.next_payday.isoformat(),
        "refreshed_at": countdown.refreshed_at.isoformat(),
    }


@app.get("/export.json")
def export_data(db: Session = Depends(get_db)):
    bundle = LedgerService(db).export_bundle()
    filename = f"finance-tracker-backup-{bundle.exported_at.date().isoformat()}.json"
    return Response(
        content=json.dumps(bundle.to_wire(), indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/import")
async def import_data(
    csrf_token: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    require_csrf(csrf_token)
    content = await file.read()
    try:
        parsed = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(status_code=400, detail=f"Import failed: {exc}") from exc
    try:
        count = LedgerService(db).import_bundle(parsed)
    except LedgerError as exc:
        raise HTTPException(status_code=400, detail=f"Import failed: {exc}") from exc
    logger.info(f"import_upload: filename={file.filename} transactions={count}")
    return {"imported": count, "detail": "Import successful"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
