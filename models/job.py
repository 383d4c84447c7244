from __future__ import annotations
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Integer, Text, String, JSON, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base

if TYPE_CHECKING:
    # 型ヒント用（実行時には読み込まれない）
    from .resume import Resume
    from .comparison import Comparison


def job_vector_id(job_id: int) -> str:
    """jobs 名前空間でのベクトルID。外部互換のため書式固定。"""
    return f"job-{job_id}"


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    jd_text: Mapped[str] = mapped_column(Text, nullable=False)
    # 索引側に無い場合の予備。本文を編集しても再計算しない
    jd_embedding: Mapped[Optional[list]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    resumes: Mapped[List["Resume"]] = relationship(
        "Resume", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )
    comparisons: Mapped[List["Comparison"]] = relationship(
        "Comparison", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )
