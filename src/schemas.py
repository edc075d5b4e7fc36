from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from .services.identity import LaunchContext

# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str

# Launch context schema
class LaunchContextRequest(BaseModel):
    """Launch context established by the SMART launch for this request"""
    patient_id: str = Field(..., min_length=1, description="Id of the patient in context")
    fhir_user: Optional[str] = Field(None, description="fhirUser claim, e.g. 'Practitioner/456'")
    practitioner_id: Optional[str] = Field(None, min_length=1, description="Explicit author practitioner id")
    fhir_base_url: Optional[str] = Field(None, description="FHIR server base URL (defaults to configured server)")
    access_token: Optional[str] = Field(None, description="Bearer token for the FHIR server")

    def to_context(self) -> LaunchContext:
        return LaunchContext(**self.model_dump())

# IPS schemas
class AssembleResponse(BaseModel):
    """Assembled (unvalidated) IPS document"""
    resource: Dict[str, Any] = Field(..., description="IPS document Bundle")
    placeholders: int = Field(..., description="Number of sections filled with a 'no information' placeholder")
    resource_counts: Dict[str, int] = Field(..., description="Resources per section")

class ExportResponse(BaseModel):
    """Validated IPS document"""
    resource: Dict[str, Any] = Field(..., description="IPS document Bundle")
    validationResult: Any = Field(None, description="Validator response body")
