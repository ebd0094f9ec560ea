"""
Pydantic models for API request/response

GenerationRequest caps text at MAX_TEXT_LENGTH characters to bound geometry work;
longer text is rejected with 400 like any other invalid body.
"""
from pydantic import BaseModel, Field, PositiveFloat, StrictBool, StrictStr
from typing import Optional


MAX_TEXT_LENGTH = 200


class GenerationRequest(BaseModel):
    """Body of POST /generate-text"""
    text: StrictStr = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)
    depth: PositiveFloat = 0.4    # Extrusion depth in scene units
    animate: StrictBool = True    # Attach a 360 degree rotation clip


class GenerationResponse(BaseModel):
    """Response from /generate-text endpoint"""
    uri: str


class StatusResponse(BaseModel):
    """Response from /status endpoint"""
    status: str = "ok"
    message: str = "Server is running."
    startTime: str  # ISO-8601, UTC


class ErrorResponse(BaseModel):
    """Error response"""
    success: bool = False
    error: str
    detail: Optional[str] = None
