from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class QuoteAnalysis(BaseModel):
    """Classifier output attached to a submission; normalized to canonical keys on save."""
    category: Optional[str] = None
    themes: Optional[List[str]] = None


class QuoteCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)
    author: Optional[str] = Field(None, max_length=200)
    source: Optional[str] = Field(None, max_length=300)
    analysis: Optional[QuoteAnalysis] = None


class QuoteReanalyze(BaseModel):
    analysis: Optional[QuoteAnalysis] = None


class QuoteResponse(BaseModel):
    id: str
    user_id: str
    text: str
    author: Optional[str]
    source: Optional[str]
    category: str
    themes: List[str]
    created_at: datetime

    class Config:
        from_attributes = True
