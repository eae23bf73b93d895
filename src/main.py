import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from config import settings
from create_tables import crear_tablas
from logger import get_logger, setup_app_logging

from modules.documents.exceptions import WorkflowError
from modules.documents.controllers.document_controller import router as document_router
from modules.documents.controllers.approval_controller import router as approval_router
from modules.documents.controllers.signature_controller import router as signature_router
from modules.auth.controllers.auth_controller import router as auth_router

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("application_starting", environment=settings.environment)
    crear_tablas()
    yield
    # --- Shutdown logic ---
    logger.info("application_stopped")

app = FastAPI(
    title="Club Document Approvals",
    description="API for document approval and external signature tracking",
    version="1.0.0",
    lifespan=lifespan
)

setup_app_logging(
    app,
    log_level=settings.log_level,
    use_json=settings.log_json,
    environment=settings.environment,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Request-ID",
        "Origin",
    ],
    expose_headers=["X-Request-ID"],
    max_age=86400,
)

@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    logger.warning(
        "workflow_error",
        error=type(exc).__name__,
        message=exc.message,
        path=request.url.path,
        **exc.details
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# Routers
app.include_router(auth_router)
app.include_router(document_router, prefix="/documents")
app.include_router(approval_router, prefix="/documents")
app.include_router(signature_router, prefix="/documents")

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
