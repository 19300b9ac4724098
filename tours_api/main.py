from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tours_api.core.config import API_V1_PREFIX, settings
from tours_api.core.error_handlers import install_error_handlers
from tours_api.core.http_hardening import install_http_hardening
from tours_api.db.session import create_all_tables
from tours_api.api.router import router as api_router
from tours_api.services.email_service import email_provider_health

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_AUTO_CREATE:
        create_all_tables()
    yield

app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_http_hardening(app, hsts=settings.is_production)
install_error_handlers(app)

app.include_router(api_router, prefix=API_V1_PREFIX)

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})

@app.get("/health")
def health():
    return {"status": "ok", "email": email_provider_health()}
