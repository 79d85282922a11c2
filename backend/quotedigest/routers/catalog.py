from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
import logging

from quotedigest.database import get_db
from quotedigest.schemas.catalog import (
    CatalogEntryResponse,
    CatalogStatsResponse,
    CategoryResponse,
    RecommendationPreviewItem,
    RecommendationPreviewRequest,
    RecommendationPreviewResponse,
    TaxonomyResponse,
)
from quotedigest.services.catalog_service import get_catalog_stats, list_active_entries
from quotedigest.services.category_normalizer import default_normalizer
from quotedigest.services.recommendation_matcher import RecommendationMatcher, build_reasoning

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/catalog", tags=["catalog"])

matcher = RecommendationMatcher()


@router.get("/categories", response_model=TaxonomyResponse)
def get_categories():
    taxonomy = default_normalizer.taxonomy
    return TaxonomyResponse(
        version=taxonomy.version,
        fallback=taxonomy.fallback.key,
        categories=[CategoryResponse(**c) for c in taxonomy.describe()],
    )


@router.get("", response_model=List[CatalogEntryResponse])
def get_catalog(db: Session = Depends(get_db)):
    return list_active_entries(db)


@router.get("/stats", response_model=CatalogStatsResponse)
def get_stats(db: Session = Depends(get_db)):
    return CatalogStatsResponse(**get_catalog_stats(db))


@router.post("/recommendations/preview", response_model=RecommendationPreviewResponse)
def preview_recommendations(payload: RecommendationPreviewRequest, db: Session = Depends(get_db)):
    """Rank the catalog for a set of raw themes without writing anything."""
    themes = default_normalizer.normalize_theme_list(payload.themes) if payload.themes else []
    scored = matcher.recommend(db, themes, payload.limit)
    return RecommendationPreviewResponse(
        themes=themes,
        items=[
            RecommendationPreviewItem(
                slug=s.entry.slug,
                title=s.entry.title,
                relevance_score=s.relevance_score,
                match_type=s.match_type,
                reasoning=build_reasoning(s),
            )
            for s in scored
        ],
    )
