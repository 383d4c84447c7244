"""
求人・履歴書の削除（比較結果・チャンク・ベクトルまで連鎖）。

ベクトル削除を先に行い、失敗したら DB 側は触らずに例外を返す。
DB 側は 1 トランザクションで消すので、再実行すれば残りを片付けられる。
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from errors import ValidationError
from models import Comparison, Job, Resume, ResumeChunk, job_vector_id
from schemas import (
    BulkDeleteResponse,
    DeletedJob,
    DeletedResume,
    DeleteJobResponse,
    DeleteResumeResponse,
)
from services import store
from services.vector_index import JOBS_NAMESPACE, RESUMES_NAMESPACE, FaissVectorIndex

logger = logging.getLogger(__name__)


def _delete_resume_rows(db: Session, resume_ids: List[int]) -> int:
    """比較結果・チャンク・履歴書を消す（commit は呼び出し側）。戻り値は比較結果の削除件数。"""
    if not resume_ids:
        return 0
    n_comparisons = db.execute(delete(Comparison).where(Comparison.resume_id.in_(resume_ids))).rowcount
    db.execute(delete(ResumeChunk).where(ResumeChunk.resume_id.in_(resume_ids)))
    db.execute(delete(Resume).where(Resume.id.in_(resume_ids)))
    return n_comparisons or 0


def delete_job(db: Session, job_id: int, *, index: FaissVectorIndex) -> DeleteJobResponse:
    job = store.get_job(db, job_id)
    deleted_job = DeletedJob.model_validate(job)
    resume_ids = list(db.scalars(select(Resume.id).where(Resume.job_id == job_id)))
    logger.info("Deleting job %s (%r) with %d resumes", job_id, job.title, len(resume_ids))

    n_vectors = index.delete(RESUMES_NAMESPACE, filter={"jobId": job_id})
    index.delete(JOBS_NAMESPACE, ids=[job_vector_id(job_id)])
    logger.info("Job %s: removed %d resume vectors and the job vector", job_id, n_vectors)

    try:
        n_comparisons = db.execute(delete(Comparison).where(Comparison.job_id == job_id)).rowcount or 0
        n_comparisons += _delete_resume_rows(db, resume_ids)
        db.execute(delete(Job).where(Job.id == job_id))
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Job %s deleted (%d comparisons)", job_id, n_comparisons)
    return DeleteJobResponse(
        deleted_job=deleted_job,
        deleted_resumes=len(resume_ids),
        deleted_comparisons=n_comparisons,
    )


def delete_resume(db: Session, job_id: int, resume_id: int, *, index: FaissVectorIndex) -> DeleteResumeResponse:
    resume = store.get_resume_in_job(db, job_id, resume_id)
    deleted = DeletedResume.model_validate(resume)

    index.delete(RESUMES_NAMESPACE, filter={"resumeId": resume_id})
    try:
        n_comparisons = _delete_resume_rows(db, [resume_id])
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Resume %s (%r) deleted from job %s", resume_id, resume.candidate_name, job_id)
    return DeleteResumeResponse(deleted_resume=deleted, deleted_comparisons=n_comparisons)


def bulk_delete_resumes(
    db: Session,
    job_id: int,
    *,
    index: FaissVectorIndex,
    resume_ids: Optional[List[int]] = None,
    delete_all: bool = False,
) -> BulkDeleteResponse:
    store.get_job(db, job_id)

    stmt = select(Resume).where(Resume.job_id == job_id)
    if delete_all:
        pass
    elif resume_ids:
        stmt = stmt.where(Resume.id.in_(resume_ids))
    else:
        raise ValidationError("Must specify either deleteAll=true or provide resumeIds array")

    targets = list(db.scalars(stmt))
    if resume_ids and not delete_all and len(targets) != len(set(resume_ids)):
        logger.warning("Some resume ids do not belong to job %s and were ignored", job_id)
    if not targets:
        return BulkDeleteResponse(message="No resumes to delete")

    deleted = [DeletedResume.model_validate(r) for r in targets]
    ids = [r.id for r in targets]

    if delete_all:
        index.delete(RESUMES_NAMESPACE, filter={"jobId": job_id})
    else:
        index.delete(RESUMES_NAMESPACE, filter={"resumeId": {"$in": ids}})

    try:
        n_comparisons = _delete_resume_rows(db, ids)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Bulk deleted %d resumes from job %s", len(ids), job_id)
    return BulkDeleteResponse(
        deleted_resumes=deleted,
        deleted_comparisons=n_comparisons,
        total_deleted=len(ids),
    )
