from __future__ import annotations
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Integer, String, Text, JSON, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base

if TYPE_CHECKING:
    from .job import Job
    from .comparison import Comparison


def chunk_vector_id(resume_id: int, chunk_index: int) -> str:
    """resumes 名前空間でのベクトルID。外部互換のため書式固定。"""
    return f"res-{resume_id}-{chunk_index}"


class Resume(Base):
    __tablename__ = "resumes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    candidate_name: Mapped[Optional[str]] = mapped_column(String(255))
    full_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    job: Mapped["Job"] = relationship("Job", back_populates="resumes")
    chunks: Mapped[List["ResumeChunk"]] = relationship(
        "ResumeChunk",
        back_populates="resume",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ResumeChunk.chunk_index",
    )
    comparisons: Mapped[List["Comparison"]] = relationship(
        "Comparison", back_populates="resume", cascade="all, delete-orphan", passive_deletes=True
    )


class ResumeChunk(Base):
    __tablename__ = "resume_chunks"
    __table_args__ = (UniqueConstraint("resume_id", "chunk_index", name="uq_resume_chunk_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resume_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resumes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    resume: Mapped["Resume"] = relationship("Resume", back_populates="chunks")

    @property
    def vector_id(self) -> str:
        return chunk_vector_id(self.resume_id, self.chunk_index)
