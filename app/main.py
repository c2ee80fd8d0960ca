from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import assets, documents, jobs, sections, tasks
from app.config import get_settings
from app.core.exceptions import DOMAIN_ERRORS, domain_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Longform Engine", lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None, openapi_url="/openapi.json" if settings.debug else None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "x-actor-id", "x-actor-plan", "x-request-id"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
for error_type in DOMAIN_ERRORS:
  app.add_exception_handler(error_type, domain_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(documents.router, prefix="/v1/documents", tags=["documents"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(sections.router, prefix="/v1/sections", tags=["sections"])
app.include_router(assets.router, prefix="/v1/assets", tags=["assets"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
