"""
PostPolice API Models
Request/Response schemas using Pydantic. Wire format is camelCase (the extension speaks JS).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckSummaryRequest(CamelModel):
    """Schema for POST /check-summary. Emptiness is checked by the service (400)."""

    content: Optional[str] = Field(default=None, description="Raw page/post text to look up")


class CheckSummaryResponse(CamelModel):
    hit: bool
    summary: Optional[str] = None


class CacheSummaryRequest(CamelModel):
    """Schema for POST /cache-summary."""

    content: Optional[str] = Field(default=None, description="Raw page/post text (fingerprinted, not stored)")
    summary: Optional[str] = Field(default=None, description="Summary or verdict to cache")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"content": "The sky is blue.", "summary": "TRUE"}
        }
    )


class CacheSummaryResponse(CamelModel):
    stored: bool


class SummarizeRequest(CamelModel):
    """Schema for POST /summarize (LLM proxy)."""

    system_prompt: Optional[str] = None
    user_prompt: Optional[str] = None


class SummarizeResponse(CamelModel):
    summary: str


class MetricsResponse(CamelModel):
    """Schema for GET /metrics. Store-backed fields are null when the store is unreachable."""

    cache_hits: int
    cache_misses: int
    hit_rate_percent: float
    total_keys: Optional[int]
    used_memory: Optional[str]
    used_memory_bytes: Optional[int]
    uptime: float
    store_state: str
    degraded: bool = False


class AdminResponse(CamelModel):
    """Schema for POST /clear-cache and POST /reset-stats."""

    success: bool
    message: str


class HealthResponse(CamelModel):
    """Schema for GET /health."""

    status: str
    store: str
    store_state: str
