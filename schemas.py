from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# リクエストは UI に合わせて camelCase（jdText など）で受ける。
# 必須項目の空チェックはサービス層で行い 400 を返すため、ここでは Optional にしておく。
class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _ORMOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# =========================
# ① 求人
# =========================
class JobCreate(_CamelRequest):
    title: Optional[str] = None
    jd_text: Optional[str] = Field(default=None, alias="jdText")


class JobUpdate(_CamelRequest):
    title: Optional[str] = None
    jd_text: Optional[str] = Field(default=None, alias="jdText")


class JobOut(_ORMOut):
    id: int
    title: Optional[str]
    jd_text: str
    created_at: Optional[datetime] = None


class IdResponse(BaseModel):
    id: int


class DeletedJob(_ORMOut):
    id: int
    title: Optional[str]


class DeleteJobResponse(BaseModel):
    success: bool = True
    deleted_job: DeletedJob
    deleted_resumes: int
    deleted_comparisons: int


# =========================
# ② 履歴書
# =========================
class ResumeCreate(_CamelRequest):
    candidate_name: Optional[str] = Field(default=None, alias="candidateName")
    full_text: Optional[str] = Field(default=None, alias="fullText")


class DeletedResume(_ORMOut):
    id: int
    candidate_name: Optional[str]


class DeleteResumeResponse(BaseModel):
    success: bool = True
    deleted_resume: DeletedResume
    deleted_comparisons: int


class BulkDeleteRequest(_CamelRequest):
    resume_ids: Optional[List[int]] = Field(default=None, alias="resumeIds")
    delete_all: bool = Field(default=False, alias="deleteAll")


class BulkDeleteResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    deleted_resumes: List[DeletedResume] = Field(default_factory=list)
    deleted_comparisons: int = 0
    total_deleted: int = 0


# =========================
# ③ マッチング
# =========================
MatchStatus = Literal["reused", "enriched", "degraded"]


class MatchRequest(_CamelRequest):
    user_id: Optional[str] = Field(default=None, alias="userId")
    top_k: int = Field(default=10, ge=1, le=10000, alias="topK")


class MatchResultItem(BaseModel):
    resume_id: int
    candidate_name: Optional[str] = None
    similarity: float
    fit_score: float
    matching_skills: List[str]
    missing_skills: List[str]
    summary: str
    status: MatchStatus


# =========================
# ④ 比較結果の一覧・集計・履歴
# =========================
class ComparisonOut(BaseModel):
    id: int
    resume_id: int
    candidate_name: Optional[str] = None
    similarity: float
    fit_score: Optional[float] = None
    effective_score: float
    grade: str
    matching_skills: List[str]
    missing_skills: List[str]
    summary: Optional[str] = None
    created_at: Optional[datetime] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool


class Analytics(BaseModel):
    total: int = 0
    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0
    average_score: float = 0.0


class ComparisonFilters(BaseModel):
    search: Optional[str] = None
    score_filter: str = "all"
    sort_by: str = "fit"
    sort_order: str = "desc"


class ComparisonPage(BaseModel):
    data: List[ComparisonOut]
    pagination: Pagination
    analytics: Analytics
    filters: ComparisonFilters


class ResumeListItem(BaseModel):
    id: int
    candidate: Optional[str]
    created_at: Optional[datetime] = None
    is_matched: bool
    match_result: Optional[ComparisonOut] = None


class ResumeFilters(BaseModel):
    search: Optional[str] = None
    status: str = "all"
    sort_by: str = "createdAt"
    sort_order: str = "desc"


class ResumePage(BaseModel):
    data: List[ResumeListItem]
    pagination: Pagination
    filters: ResumeFilters


class HistoryItem(BaseModel):
    when: Optional[datetime] = None
    job_id: int
    job: Optional[str] = None
    resume_id: int
    candidate: Optional[str] = None
    similarity: float
    fit_score: float
    matching: List[str]
    missing: List[str]
    verdict: Optional[str] = None
