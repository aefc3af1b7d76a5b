import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from db import create_db_and_tables, get_session
from errors import HarvestError, InvalidArgumentError, InvalidStateError, NotFoundError, ValidationFailedError
from harvest import HarvestLifecycle, PhotoUpload
from models import HarvestEntry, Tenant
from photos import LocalPhotoStorage, PhotoStorage
from report import HarvestSummaryAggregator
from schemas import (
    HarvestCreate,
    HarvestListResponse,
    HarvestResponse,
    HarvestUpdate,
    PhotoResponse,
    PhotoUploadResponse,
    SuccessResponse,
    SummaryFilters,
    SummaryResponse,
    TraderNameResponse,
)
from traders import TraderDirectory

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_TENANT_KEY = os.getenv("DEFAULT_TENANT_KEY", "kral")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()
    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Harvest Tracking API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


ERROR_STATUS = {
    NotFoundError: 404,
    InvalidArgumentError: 400,
    InvalidStateError: 409,
    ValidationFailedError: 422,
}


@app.exception_handler(HarvestError)
async def harvest_error_handler(request: Request, exc: HarvestError):
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    body = {"message": exc.message, "code": exc.code}
    if isinstance(exc, ValidationFailedError):
        body["fields"] = exc.fields
        body["violations"] = [{"field": v.field, "message": v.message} for v in exc.violations]
    logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=body)


def get_tenant_id(
    x_tenant: str | None = Header(None),
    tenant: str | None = Query(None),
    session: Session = Depends(get_session),
) -> str:
    """Resolve the request tenant: x-tenant header, then ?tenant=, then the default key."""
    key = (x_tenant or tenant or DEFAULT_TENANT_KEY).strip().lower()
    row = session.exec(select(Tenant).where(Tenant.key == key)).first()
    if row is None or row.status != "active":
        raise HTTPException(status_code=404, detail="Unknown tenant")
    return row.id


def get_photo_storage() -> PhotoStorage:
    return LocalPhotoStorage()


def get_lifecycle(
    session: Session = Depends(get_session),
    storage: PhotoStorage = Depends(get_photo_storage),
) -> HarvestLifecycle:
    return HarvestLifecycle(session, storage=storage)


def to_response(lifecycle: HarvestLifecycle, entry: HarvestEntry) -> HarvestResponse:
    garden_name, campus_name = lifecycle.labels(entry)
    return HarvestResponse.from_entry(entry, garden_name=garden_name, campus_name=campus_name)


@app.post("/harvest", response_model=HarvestResponse)
def create_harvest(
    request: HarvestCreate,
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    """Create a draft harvest entry."""
    logger.info(f"Create harvest request: garden={request.garden_id}, date={request.date}")
    entry = lifecycle.create(tenant_id, request)
    return to_response(lifecycle, entry)


@app.get("/harvest/traders", response_model=list[TraderNameResponse])
def get_traders(
    q: str = Query("", description="Autocomplete query"),
    list_mode: str | None = Query(None, alias="list", description="'all' for the filter list"),
    tenant_id: str = Depends(get_tenant_id),
    session: Session = Depends(get_session),
):
    """Trader names: autocomplete by default, every trader with ?list=all."""
    directory = TraderDirectory(session)
    if list_mode == "all":
        traders = directory.list_all(tenant_id)
    else:
        traders = directory.search(tenant_id, q)
    return [TraderNameResponse(name=t.name) for t in traders]


@app.get("/harvest/summary", response_model=SummaryResponse)
def get_summary(
    year: int | None = Query(None),
    campus_id: str | None = Query(None),
    garden_id: int | None = Query(None),
    trader: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    session: Session = Depends(get_session),
):
    """Submitted-only summary rows and grand totals."""
    filters = SummaryFilters(
        year=year,
        campus_id=campus_id or None,
        garden_id=garden_id,
        trader=trader.strip() if trader and trader.strip() else None,
    )
    return HarvestSummaryAggregator(session).summarize(tenant_id, filters)


@app.get("/harvest", response_model=HarvestListResponse)
def list_harvests(
    date_from: str | None = Query(None, description="Start date filter (YYYY-MM-DD)"),
    date_to: str | None = Query(None, description="End date filter (YYYY-MM-DD)"),
    status: str | None = Query(None),
    garden_id: int | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    """Latest 50 entries, newest first."""
    logger.info(f"Harvest list request - from: {date_from}, to: {date_to}, status: {status}, garden: {garden_id}")
    entries = lifecycle.list_entries(tenant_id, date_from=date_from, date_to=date_to, status=status, garden_id=garden_id)
    return HarvestListResponse(items=[to_response(lifecycle, e) for e in entries])


@app.get("/harvest/{harvest_id}", response_model=HarvestResponse)
def get_harvest(
    harvest_id: str,
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    return to_response(lifecycle, lifecycle.get(tenant_id, harvest_id))


@app.put("/harvest/{harvest_id}", response_model=HarvestResponse)
def update_harvest(
    harvest_id: str,
    request: HarvestUpdate,
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    """Partial update of a draft; omitted fields are left unchanged."""
    logger.info(f"Update harvest request for ID: {harvest_id}")
    entry = lifecycle.update(tenant_id, harvest_id, request)
    return to_response(lifecycle, entry)


@app.post("/harvest/{harvest_id}/submit", response_model=HarvestResponse)
def submit_harvest(
    harvest_id: str,
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    logger.info(f"Submit harvest request for ID: {harvest_id}")
    entry = lifecycle.submit(tenant_id, harvest_id)
    return to_response(lifecycle, entry)


@app.delete("/harvest/{harvest_id}", response_model=SuccessResponse)
def delete_harvest(
    harvest_id: str,
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    logger.info(f"Delete harvest request for ID: {harvest_id}")
    lifecycle.delete(tenant_id, harvest_id)
    return SuccessResponse()


@app.post("/harvest/{harvest_id}/photos", response_model=PhotoUploadResponse)
def upload_harvest_photos(
    harvest_id: str,
    category: str = Query(..., description="GENERAL or TRADER_SLIP"),
    files: list[UploadFile] = File(...),
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    """Store photo binaries and record them against a draft entry."""
    uploads = [PhotoUpload(filename=f.filename, content_type=f.content_type, content=f.file.read()) for f in files]
    photos = lifecycle.attach_photos(tenant_id, harvest_id, category, uploads)
    return PhotoUploadResponse(photos=[PhotoResponse.from_photo(p) for p in photos])


@app.delete("/harvest/{harvest_id}/photos/{photo_id}", response_model=SuccessResponse)
def delete_harvest_photo(
    harvest_id: str,
    photo_id: str,
    tenant_id: str = Depends(get_tenant_id),
    lifecycle: HarvestLifecycle = Depends(get_lifecycle),
):
    logger.info(f"Delete photo request: harvest={harvest_id}, photo={photo_id}")
    lifecycle.delete_photo(tenant_id, harvest_id, photo_id)
    return SuccessResponse()


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Harvest Tracking API", "docs": "/docs"}
