import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from accounts import AccountDeletion, AccountRegistry
from auth import (
    GoogleIdentityVerifier,
    IdentityError,
    issue_session_token,
    read_session_token,
)
from categories import CategoryRegistry
from config import get_settings
from database import get_db
from ledger import FlowType, TransactionRecord, classify_flow
from legacy_import import parse_legacy_expenses
from periods import Period, resolve_period
from schemas import (
    AccountIn,
    AccountReorderIn,
    BulkTransactionsIn,
    CategoryLabelIn,
    IdentityTokenIn,
    ReportSettings,
    ReportTemplate,
    ReportViews,
    TransactionIn,
    TransactionUpdate,
)
from services import (
    CSVService,
    DashboardService,
    ReportService,
    SqlConfigStore,
    TransactionNotFound,
    TransactionService,
    UserService,
    local_today,
    transaction_payload,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_identity_verifier() -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier()


def current_user_id(authorization: Optional[str] = Header(None)) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        return read_session_token(authorization[7:].strip())
    except IdentityError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def period_from_request(request: Request) -> Optional[Period]:
    period_slug = request.query_params.get("period")
    if not period_slug:
        return None
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def category_side(side: str) -> FlowType:
    flow = classify_flow(side)
    if flow not in (FlowType.outgoing, FlowType.incoming):
        raise HTTPException(status_code=404, detail=f"Unknown category side '{side}'")
    return flow


def account_payload(acc) -> dict[str, object]:
    return {
        "id": acc.id,
        "name": acc.name,
        "icon": acc.icon,
        "visible": acc.visible,
        "order": acc.order,
        "is_default": acc.is_default,
        "opening_balance_cents": acc.opening_balance_cents,
    }


def _selection(values: Optional[list[str]], default: list[str]) -> list[str]:
    if values is None:
        return default
    return [v for v in values if v]


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.post("/api/auth/google")
def auth_google(
    payload: IdentityTokenIn,
    db: Session = Depends(get_db),
    verifier: GoogleIdentityVerifier = Depends(get_identity_verifier),
):
    try:
        identity = verifier.verify(payload.id_token)
    except IdentityError as exc:
        logger.info(f"Google sign-in rejected: {exc}")
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    users = UserService(db)
    user = users.get_or_create(identity)
    return {"token": issue_session_token(user.id), "user": users.profile(user.id)}


@app.get("/api/user/profile")
def user_profile(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    try:
        return UserService(db).profile(user_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/transactions")
def list_transactions(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    records = TransactionService(db, user_id).records()
    return {"items": [transaction_payload(r) for r in records]}


@app.post("/api/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return transaction_payload(TransactionRecord.from_model(txn))


@app.post("/api/transactions/bulk")
def bulk_create_transactions(
    payload: BulkTransactionsIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        count = TransactionService(db, user_id).bulk_create(payload.transactions)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"imported": count}


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, payload)
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_payload(TransactionRecord.from_model(txn))


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    csv_text = CSVService(db, user_id).export()
    filename = f"transactions_{local_today().isoformat()}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/transactions/import")
async def import_transactions(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8") from exc
    count, errors = CSVService(db, user_id).commit(content)
    return {"imported": count, "errors": errors}


@app.post("/api/transactions/import-legacy")
async def import_legacy_transactions(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    content = (await request.body()).decode("utf-8", errors="replace")
    items = parse_legacy_expenses(content)
    if not items:
        return {"imported": 0}
    count = TransactionService(db, user_id).bulk_create(items)
    return {"imported": count}


@app.get("/api/accounts")
def list_accounts(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    registry = AccountRegistry(SqlConfigStore(db, user_id))
    return {"items": [account_payload(acc) for acc in registry.list_accounts()]}


@app.post("/api/accounts", status_code=201)
def create_account(
    payload: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    registry = AccountRegistry(SqlConfigStore(db, user_id))
    account = registry.add_account(
        payload.name or "",
        payload.icon or "",
        payload.opening_balance_cents or 0,
    )
    if account is None:
        raise HTTPException(status_code=400, detail="Account name is required")
    return account_payload(account)


@app.patch("/api/accounts/{account_id}")
def update_account(
    account_id: str,
    payload: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    registry = AccountRegistry(SqlConfigStore(db, user_id))
    if registry.get_account(account_id) is None:
        raise HTTPException(status_code=404, detail="Account not found")
    fields = payload.model_dump(exclude={"id"}, exclude_none=True)
    if not registry.update_account(account_id, **fields):
        raise HTTPException(status_code=400, detail="Name and icon cannot be blank")
    return account_payload(registry.get_account(account_id))


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    outcome = AccountRegistry(SqlConfigStore(db, user_id)).delete_account(account_id)
    if outcome is AccountDeletion.not_found:
        raise HTTPException(status_code=404, detail="Account not found")
    if outcome is AccountDeletion.forbidden:
        raise HTTPException(status_code=403, detail="Default accounts cannot be deleted")


@app.post("/api/accounts/reorder")
def reorder_accounts(
    payload: AccountReorderIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    registry = AccountRegistry(SqlConfigStore(db, user_id))
    if not registry.reorder_account(payload.dragged_id, payload.target_id):
        raise HTTPException(status_code=404, detail="Account not found")
    return {"items": [account_payload(acc) for acc in registry.list_accounts()]}


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    config = CategoryRegistry(SqlConfigStore(db, user_id)).get_categories()
    return {FlowType.outgoing.value: config.outgoing, FlowType.incoming.value: config.incoming}


@app.post("/api/categories/{side}", status_code=201)
def add_category(
    side: str,
    payload: CategoryLabelIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    flow = category_side(side)
    registry = CategoryRegistry(SqlConfigStore(db, user_id))
    if not registry.add_category(flow, payload.label):
        raise HTTPException(status_code=400, detail="Category is blank or already exists")
    return {"items": registry.get_categories().side(flow)}


@app.put("/api/categories/{side}/{index}")
def rename_category(
    side: str,
    index: int,
    payload: CategoryLabelIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    flow = category_side(side)
    registry = CategoryRegistry(SqlConfigStore(db, user_id))
    labels = registry.get_categories().side(flow)
    if index < 0 or index >= len(labels):
        raise HTTPException(status_code=404, detail="Category not found")
    if not registry.rename_category(flow, index, payload.label):
        raise HTTPException(status_code=400, detail="Category is blank or already exists")
    return {"items": registry.get_categories().side(flow)}


@app.delete("/api/categories/{side}/{index}")
def delete_category(
    side: str,
    index: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    flow = category_side(side)
    registry = CategoryRegistry(SqlConfigStore(db, user_id))
    if not registry.delete_category(flow, index):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"items": registry.get_categories().side(flow)}


@app.get("/api/dashboard")
def dashboard(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return DashboardService(db, user_id).summary()


@app.get("/api/balances")
def balances(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return {"items": DashboardService(db, user_id).balances()}


@app.get("/api/net-worth")
def net_worth(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return {"net_worth_cents": DashboardService(db, user_id).net_worth()}


@app.get("/api/reports")
def run_report(
    date_range: str = "today",
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    types: Optional[list[str]] = Query(None),
    accounts: Optional[list[str]] = Query(None),
    categories: Optional[list[str]] = Query(None),
    summary: bool = True,
    category_table: bool = True,
    account_table: bool = False,
    trend_chart: bool = True,
    detail_table: bool = True,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    defaults = ReportSettings()
    try:
        settings = ReportSettings(
            date_range=date_range,
            from_date=from_date or None,
            to_date=to_date or None,
            types=_selection(types, defaults.types),
            accounts=_selection(accounts, defaults.accounts),
            categories=_selection(categories, []),
            views=ReportViews(
                summary=summary,
                category_table=category_table,
                account_table=account_table,
                trend_chart=trend_chart,
                detail_table=detail_table,
            ),
        )
        return ReportService(db, user_id).run(settings)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/reports/overview")
def report_overview(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    return ReportService(db, user_id).overview(period)


@app.get("/api/report-templates")
def list_report_templates(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    templates = ReportService(db, user_id).templates.list()
    return {"items": [t.model_dump(mode="json") for t in templates]}


@app.post("/api/report-templates", status_code=201)
def save_report_template(
    payload: ReportTemplate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    template = ReportService(db, user_id).templates.save(payload.name, payload)
    if template is None:
        raise HTTPException(status_code=400, detail="Template name is required")
    return template.model_dump(mode="json")


@app.delete("/api/report-templates/{index}", status_code=204)
def delete_report_template(
    index: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    if not ReportService(db, user_id).templates.delete(index):
        raise HTTPException(status_code=404, detail="Template not found")
