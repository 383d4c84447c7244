from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
import schemas
from services import cleanup, ingestion, store
from services.embeddings import Embedder, get_embedder
from services.vector_index import FaissVectorIndex, get_vector_index

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
)


# 求人の登録（埋め込み → DB → ベクトル索引）
@router.post("", response_model=schemas.IdResponse)
def create_job(
    req: schemas.JobCreate,
    db: Session = Depends(get_db),
    embedder: Embedder = Depends(get_embedder),
    index: FaissVectorIndex = Depends(get_vector_index),
):
    job_id = ingestion.ingest_job(db, req.title, req.jd_text, embedder=embedder, index=index)
    return schemas.IdResponse(id=job_id)


# 求人の一覧（新しい順）
@router.get("", response_model=list[schemas.JobOut])
def list_jobs(db: Session = Depends(get_db)):
    return store.list_jobs(db)


@router.get("/{job_id}", response_model=schemas.JobOut)
def read_job(job_id: int, db: Session = Depends(get_db)):
    return store.get_job(db, job_id)


# タイトル・本文の編集。埋め込みは作り直さない
@router.patch("/{job_id}", response_model=schemas.JobOut)
def update_job(job_id: int, req: schemas.JobUpdate, db: Session = Depends(get_db)):
    return store.update_job(db, job_id, title=req.title, jd_text=req.jd_text)


# 求人の削除（比較結果・履歴書・ベクトルまで連鎖）
@router.delete("/{job_id}", response_model=schemas.DeleteJobResponse)
def delete_job(
    job_id: int,
    db: Session = Depends(get_db),
    index: FaissVectorIndex = Depends(get_vector_index),
):
    return cleanup.delete_job(db, job_id, index=index)
