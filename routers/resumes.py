from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
import schemas
from services import cleanup, comparisons, ingestion
from services.chunking import TokenChunker, get_chunker
from services.embeddings import Embedder, get_embedder
from services.vector_index import FaissVectorIndex, get_vector_index

router = APIRouter(
    prefix="/jobs/{job_id}/resumes",
    tags=["Resumes"],
)


# 履歴書のアップロード（チャンク化 → 埋め込み → DB → ベクトル索引）
@router.post("", response_model=schemas.IdResponse)
def upload_resume(
    job_id: int,
    req: schemas.ResumeCreate,
    db: Session = Depends(get_db),
    embedder: Embedder = Depends(get_embedder),
    index: FaissVectorIndex = Depends(get_vector_index),
    chunker: TokenChunker = Depends(get_chunker),
):
    resume_id = ingestion.ingest_resume(
        db,
        job_id,
        req.candidate_name,
        req.full_text,
        embedder=embedder,
        index=index,
        chunker=chunker,
    )
    return schemas.IdResponse(id=resume_id)


# 求人に紐づく履歴書の一覧（比較結果つき）
@router.get("", response_model=schemas.ResumePage)
def list_resumes(
    job_id: int,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = None,
    status: str = "all",
):
    return comparisons.list_resumes(
        db,
        job_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        search=search,
        status=status,
    )


# 一括削除。/{resume_id} より先に登録しておく
@router.delete("/bulk-delete", response_model=schemas.BulkDeleteResponse)
def bulk_delete(
    job_id: int,
    req: schemas.BulkDeleteRequest,
    db: Session = Depends(get_db),
    index: FaissVectorIndex = Depends(get_vector_index),
):
    return cleanup.bulk_delete_resumes(
        db, job_id, index=index, resume_ids=req.resume_ids, delete_all=req.delete_all
    )


@router.delete("/{resume_id}", response_model=schemas.DeleteResumeResponse)
def delete_resume(
    job_id: int,
    resume_id: int,
    db: Session = Depends(get_db),
    index: FaissVectorIndex = Depends(get_vector_index),
):
    return cleanup.delete_resume(db, job_id, resume_id, index=index)
