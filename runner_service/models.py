"""
Pydantic models for the runner service.

These models define the structure of API requests and responses. Field
aliases keep the wire format camelCase.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.common.types import ResearchRequest

ANONYMOUS_TENANT = "anonymous"


class ResearchRequestModel(BaseModel):
    """
    Request body for POST /api/research.

    Either keywords (opportunity search) or company info (deep research),
    never both and never neither.
    """

    model_config = ConfigDict(populate_by_name=True)

    keywords: Optional[str] = Field(None, description="Job search keywords.")
    location: Optional[str] = Field(None, description="Optional job search location.")
    company_name: Optional[str] = Field(None, alias="companyName")
    company_url: Optional[str] = Field(None, alias="companyUrl")
    notes: Optional[str] = Field(None, max_length=2000)
    client_id: Optional[str] = Field(
        None, alias="clientId", description="Tenant identifier; anonymous when absent."
    )
    force_refresh: bool = Field(False, alias="forceRefresh")

    @model_validator(mode="after")
    def check_mode(self) -> "ResearchRequestModel":
        has_keywords = self.keywords is not None
        has_company = self.company_name is not None or self.company_url is not None
        if has_keywords == has_company:
            raise ValueError(
                "Provide either keywords (opportunity search) or "
                "companyName/companyUrl (deep research), not both"
            )
        return self

    @property
    def is_search(self) -> bool:
        return self.keywords is not None

    def to_request(self) -> ResearchRequest:
        return ResearchRequest(
            keywords=self.keywords,
            location=self.location,
            company_name=self.company_name,
            company_url=self.company_url,
            notes=self.notes,
            tenant_id=(self.client_id or "").strip() or ANONYMOUS_TENANT,
            force_refresh=self.force_refresh,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    cache_backend: str
    capability_enabled: bool
    timestamp: datetime
