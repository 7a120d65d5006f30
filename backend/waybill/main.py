import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from waybill.config import settings
from waybill.middleware.exceptions import register_exception_handlers
from waybill.middleware.tenant import TenantMiddleware
from waybill.routers import bulk_import, events, health, lookups, manifests, shipments
from waybill.services.scheduler import lifespan

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Waybill",
    description="Dispatch Manifest & Delivery Execution Service",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Tenant context (innermost - processes request data)
app.add_middleware(TenantMiddleware)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)

# Tenant-scoped (require tenant_id in JWT)
app.include_router(manifests.router, prefix="/api/manifests", tags=["manifests"])
app.include_router(shipments.router, prefix="/api/shipments", tags=["shipments"])
app.include_router(events.router, prefix="/api/events", tags=["events"])
app.include_router(lookups.router, prefix="/api/lookups", tags=["lookups"])
app.include_router(bulk_import.router, prefix="/api/bulk-import", tags=["bulk-import"])
