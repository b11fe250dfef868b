from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Literal

ReviewSourceName = Literal["capterra", "g2"]
VerificationStatus = Literal["verified", "unverified", "needs_review"]
Category = Literal["specific", "compatible", "general", "unknown"]
Confidence = Literal["high", "medium", "low"]


class VendorRecord(BaseModel):
    """A directory entry as read from the Content Store. Extra fields are ignored."""
    slug: str
    name: str
    website: str


class SourceMapping(BaseModel):
    slug: str
    url: Optional[str] = None


class ReviewObservation(BaseModel):
    """One extracted (score, count, url) reading for a vendor from one source."""
    source: ReviewSourceName
    score: float
    count: int
    url: str


class ReviewSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: ReviewSourceName
    score: float = Field(ge=0, le=5)
    count: int = Field(ge=0)
    url: str
    last_updated: str = Field(alias="lastUpdated")


class AggregatedReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vendor_slug: Optional[str] = Field(default=None, exclude=True)
    aggregate_score: Optional[float] = Field(default=None, alias="aggregateScore")
    total_count: int = Field(default=0, alias="totalCount")
    sources: List[ReviewSource] = Field(default_factory=list)
    last_aggregated: str = Field(alias="lastAggregated")


class ReviewChange(BaseModel):
    slug: str
    details: List[str] = Field(default_factory=list)


class DiscoveredVendor(BaseModel):
    name: str
    website: str
    description: Optional[str] = None
    source: Optional[str] = None


class KeywordMatch(BaseModel):
    keyword: str
    count: int


class KeywordEvidence(BaseModel):
    count: int = 0
    matches: List[KeywordMatch] = Field(default_factory=list)

    def keywords(self) -> List[str]:
        return [m.keyword for m in self.matches]


class VerificationReport(BaseModel):
    vendor: Optional[str] = None
    name: str
    website: str
    website_live: bool
    website_error: Optional[str] = None
    pages_checked: List[str] = Field(default_factory=list)
    ketamine_evidence: KeywordEvidence = Field(default_factory=KeywordEvidence)
    psychiatry_evidence: KeywordEvidence = Field(default_factory=KeywordEvidence)
    pricing_found: Optional[List[str]] = None
    status: Optional[VerificationStatus] = None
    verification_date: str


class Classification(BaseModel):
    category: Category
    reason: str
    confidence: Confidence
    inferred_features: Dict[str, bool] = Field(default_factory=dict)
    ketamine_mentions: int = 0
    psychiatry_mentions: int = 0


class DedupDecision(BaseModel):
    candidate: DiscoveredVendor
    accepted: bool
    reason: Optional[str] = None
    matched: Optional[str] = None
    in_batch: bool = False
