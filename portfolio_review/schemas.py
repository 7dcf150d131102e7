"""
Pydantic request/response models.

Rationale:
- Define simple, explicit input/output contracts for the API.
- Every report field has a value, so the response shape never varies;
  only the fidelity of the content does.
- Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


InterviewReadiness = Literal[
    "Ready for interviews",
    "Almost ready",
    "Needs more work",
    "Significant improvements needed",
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(BaseModel):
    url: Optional[str] = None
    mode: Optional[str] = None


class ReviewRequest(BaseModel):
    email: Optional[str] = None
    url: Optional[str] = None


class Recommendation(_CamelModel):
    priority: Literal["high", "medium", "low"]
    category: str = "General"
    text: str


class ScoreResult(_CamelModel):
    overall_score: int
    subscores: Dict[str, int]
    summary: str
    strengths: List[str]
    weaknesses: List[str]
    recommendations: List[Recommendation]
    interview_readiness: InterviewReadiness
    standout_feature: Optional[str] = None


class Screenshots(_CamelModel):
    desktop_full: Optional[str] = None
    desktop_fold: Optional[str] = None
    mobile_full: Optional[str] = None


class Section(_CamelModel):
    type: str
    name: str
    ai_review: str
    score: int
    suggestions: List[str] = Field(default_factory=list)


class CaseStudyReport(_CamelModel):
    url: str
    title: str
    word_count: int
    score: int
    subscores: Dict[str, int]
    screenshots: Screenshots
    sections: List[Section]
    summary: str
    strengths: List[str]
    recommendations: List[Recommendation]


class AnalysisReport(_CamelModel):
    portfolio_url: str
    analyzed_at: str
    analysis_version: str
    overall_score: int
    subscores: Dict[str, int]
    summary: str
    strengths: List[str]
    weaknesses: List[str]
    interview_readiness: InterviewReadiness
    standout_feature: Optional[str] = None
    case_studies: List[CaseStudyReport]
    top_recommendations: List[Recommendation]
    degraded_fields: List[str] = Field(default_factory=list)
