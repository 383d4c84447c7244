from __future__ import annotations
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Integer, String, Float, JSON, Text, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base

if TYPE_CHECKING:
    from .job import Job
    from .resume import Resume


# スコア帯（下限を含む）。API のフィルタ・集計・CSV のすべてで共通
SCORE_BUCKETS = (
    ("excellent", 0.8, None),
    ("good", 0.6, 0.8),
    ("fair", 0.4, 0.6),
    ("poor", None, 0.4),
)
BUCKET_LABELS = {
    "excellent": "Excellent",
    "good": "Good",
    "fair": "Fair",
    "poor": "Poor",
}


def score_bucket(score: float) -> str:
    if score >= 0.8:
        return "excellent"
    if score >= 0.6:
        return "good"
    if score >= 0.4:
        return "fair"
    return "poor"


def score_label(score: float) -> str:
    return BUCKET_LABELS[score_bucket(score)]


class Comparison(Base):
    """
    求人×履歴書の比較結果。(job_id, resume_id) ごとに 1 行だけ持ち、
    マッチング再実行時はキャッシュとして再利用する。
    """

    __tablename__ = "comparisons"
    __table_args__ = (UniqueConstraint("job_id", "resume_id", name="uq_comparison_job_resume"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    resume_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resumes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    similarity: Mapped[float] = mapped_column(Float, nullable=False)
    fit_score: Mapped[Optional[float]] = mapped_column(Float)
    matching_skills: Mapped[List[str]] = mapped_column(JSON, default=list)
    missing_skills: Mapped[List[str]] = mapped_column(JSON, default=list)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    job: Mapped["Job"] = relationship("Job", back_populates="comparisons")
    resume: Mapped["Resume"] = relationship("Resume", back_populates="comparisons")

    # 表示・並べ替え・帯判定に使うスコア。fit_score が無ければ similarity
    @hybrid_property
    def effective_score(self) -> float:
        return self.fit_score if self.fit_score is not None else self.similarity

    @effective_score.inplace.expression
    @classmethod
    def _effective_score_expression(cls):
        return func.coalesce(cls.fit_score, cls.similarity)

    @property
    def grade(self) -> str:
        return score_label(self.effective_score)
