"""Request payloads accepted by the analytics API."""
from typing import List, Optional
from pydantic import BaseModel, Field


class AnalyzeRequest(BaseModel):
    """Single-domain analysis request.

    ``domainName`` is optional at the schema level so a missing name yields
    the API's own 400 message rather than a generic validation error.
    """
    domain_name: Optional[str] = Field(default=None, alias="domainName")
    api_key: Optional[str] = Field(default=None, alias="apiKey")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {"domainName": "crypto.eth"}
        }


class DomainListRequest(BaseModel):
    """Batch and compare requests."""
    domains: Optional[List[str]] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {"domains": ["crypto.eth", "web3.io"]}
        }
