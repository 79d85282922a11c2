from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime


class CategoryResponse(BaseModel):
    key: str
    slug: str
    priority: int


class TaxonomyResponse(BaseModel):
    version: str
    fallback: str
    categories: List[CategoryResponse]


class CatalogEntryResponse(BaseModel):
    id: str
    slug: str
    title: str
    author: Optional[str] = None
    description: str
    price: Optional[str] = None
    categories: List[str]
    priority: int
    created_at: datetime

    class Config:
        from_attributes = True


class CatalogStatsResponse(BaseModel):
    total: int
    active: int
    inactive: int
    categories_breakdown: Dict[str, int]


class RecommendationPreviewRequest(BaseModel):
    themes: List[str] = Field(default_factory=list)  # Raw theme strings, normalized server-side
    limit: Optional[int] = Field(None, ge=1, le=20)


class RecommendationPreviewItem(BaseModel):
    slug: str
    title: str
    relevance_score: int
    match_type: str
    reasoning: str


class RecommendationPreviewResponse(BaseModel):
    themes: List[str]  # Canonical keys the ranking used
    items: List[RecommendationPreviewItem]
