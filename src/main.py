import logging

from fastapi import FastAPI, Depends, HTTPException

from . import schemas
from .config import settings
from .exceptions import MissingIdentityContext
from .logging_config import configure_logging
from .services.export_service import IPSExportService

from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup"""
    configure_logging(settings.log_level)
    logger.info("%s ready (FHIR server %s)", settings.app_name, settings.fhir_base_url)
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="International Patient Summary exporter - assembles and validates IPS document Bundles",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan
)

def get_export_service() -> IPSExportService:
    """Export service dependency for FastAPI endpoints"""
    return IPSExportService()

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}
    """
    return {"status": "ok"}

# ============================================================================
# IPS ENDPOINTS
# ============================================================================

@app.post("/ips/assemble", response_model=schemas.AssembleResponse)
async def assemble_ips(
    request: schemas.LaunchContextRequest,
    service: IPSExportService = Depends(get_export_service)
):
    """
    Assemble the IPS document for the patient in context, without validating it.

    Sections with no data (or whose fetch failed) carry a single
    "no known information" placeholder.

    Returns:
    - 200 with the document Bundle
    - 422 if the patient or practitioner cannot be resolved
    """
    try:
        document = await service.assemble(request.to_context())
    except MissingIdentityContext as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "resource": document.to_dict(),
        "placeholders": document.placeholder_count,
        "resource_counts": document.resource_counts
    }

@app.post("/ips/export", response_model=schemas.ExportResponse)
async def export_ips(
    request: schemas.LaunchContextRequest,
    service: IPSExportService = Depends(get_export_service)
):
    """
    Assemble the IPS document and submit it to the configured validator.

    Returns:
    - 200 with {"resource": Bundle, "validationResult": validator response}
    - 422 if the patient or practitioner cannot be resolved
    - 502 if the validator fails or is unreachable
    """
    try:
        result = await service.export(request.to_context())
    except MissingIdentityContext as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not result.success:
        raise HTTPException(
            status_code=502,
            detail=f"IPS validation failed: {result.error}"
        )
    return result.to_response()
