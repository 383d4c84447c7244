"""
リレーショナルDBへの読み書き（jobs / resumes / resume_chunks / comparisons）。
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import NotFound
from models import Comparison, Job, Resume, ResumeChunk

logger = logging.getLogger(__name__)


# ------ 求人 ------
def create_job(db: Session, title: str, jd_text: str, embedding: Optional[List[float]] = None) -> Job:
    job = Job(title=title, jd_text=jd_text, jd_embedding=embedding)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_job(db: Session, job_id: int) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise NotFound("job_not_found", f"Job {job_id} not found")
    return job


def list_jobs(db: Session) -> List[Job]:
    return list(db.scalars(select(Job).order_by(Job.created_at.desc(), Job.id.desc())))


def update_job(db: Session, job_id: int, title: Optional[str] = None, jd_text: Optional[str] = None) -> Job:
    # 本文を変えても埋め込みは作り直さない（既知の鮮度の問題）
    job = get_job(db, job_id)
    if title is not None:
        job.title = title
    if jd_text is not None:
        job.jd_text = jd_text
    db.commit()
    db.refresh(job)
    return job


# ------ 履歴書 ------
def create_resume(db: Session, job_id: int, candidate_name: str, full_text: str) -> Resume:
    resume = Resume(job_id=job_id, candidate_name=candidate_name, full_text=full_text)
    db.add(resume)
    db.commit()
    db.refresh(resume)
    return resume


def get_resume_in_job(db: Session, job_id: int, resume_id: int) -> Resume:
    resume = db.scalar(select(Resume).where(Resume.id == resume_id, Resume.job_id == job_id))
    if resume is None:
        raise NotFound("resume_not_found", f"Resume {resume_id} not found in job {job_id}")
    return resume


def resume_texts(db: Session, resume_ids: Sequence[int]) -> Dict[int, Resume]:
    if not resume_ids:
        return {}
    rows = db.scalars(select(Resume).where(Resume.id.in_(list(resume_ids))))
    return {r.id: r for r in rows}


def count_resumes(db: Session, job_id: int) -> int:
    return db.scalar(select(func.count(Resume.id)).where(Resume.job_id == job_id)) or 0


def insert_chunks(db: Session, resume_id: int, pieces: Sequence[str], vectors: Sequence[List[float]]) -> List[ResumeChunk]:
    """
    チャンクを chunk_index 順に 1 トランザクションで書き込む。
    途中で失敗したら何も残さない。
    """
    rows = [
        ResumeChunk(resume_id=resume_id, chunk_index=i, chunk_text=piece, embedding=list(vec))
        for i, (piece, vec) in enumerate(zip(pieces, vectors))
    ]
    try:
        db.add_all(rows)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return rows


# ------ 比較結果 ------
def comparisons_by_resume(db: Session, job_id: int) -> Dict[int, Comparison]:
    rows = db.scalars(select(Comparison).where(Comparison.job_id == job_id).order_by(Comparison.id))
    out: Dict[int, Comparison] = {}
    for c in rows:
        # 一意制約前のデータが残っていても最初の1件を正とする
        out.setdefault(c.resume_id, c)
    return out


def upsert_comparison(
    db: Session,
    *,
    user_id: str,
    job_id: int,
    resume_id: int,
    similarity: float,
    fit_score: Optional[float],
    matching_skills: List[str],
    missing_skills: List[str],
    summary: str,
) -> Comparison:
    """(job_id, resume_id) をキーに insert-or-update。同時実行で先を越されたら更新に切り替える。"""
    values = dict(
        user_id=user_id,
        similarity=similarity,
        fit_score=fit_score,
        matching_skills=list(matching_skills),
        missing_skills=list(missing_skills),
        summary=summary,
    )

    def _find() -> Optional[Comparison]:
        return db.scalar(
            select(Comparison).where(Comparison.job_id == job_id, Comparison.resume_id == resume_id)
        )

    row = _find()
    if row is None:
        row = Comparison(job_id=job_id, resume_id=resume_id, **values)
        db.add(row)
        try:
            db.commit()
            db.refresh(row)
            return row
        except IntegrityError:
            db.rollback()
            logger.info("Comparison for job %s resume %s inserted concurrently; updating", job_id, resume_id)
            row = _find()
            if row is None:
                raise

    for key, value in values.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row
