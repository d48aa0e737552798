"""
Health check API schemas
"""

from datetime import datetime

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Health status schema"""

    status: str = Field(default="ok", description="Overall service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    mode: str = Field(..., description="Update delivery mode: webhook or polling")
    timestamp: datetime = Field(..., description="Health check timestamp")


class LivenessResponse(BaseModel):
    """Liveness probe response"""

    status: str = Field(default="alive", description="Liveness status")


class ReadinessResponse(BaseModel):
    """Readiness probe response"""

    status: str = Field(default="ready", description="Readiness status")
