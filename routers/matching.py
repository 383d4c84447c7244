from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from database import get_db
import schemas
from services import comparisons
from services.llm import TextGenerator, get_llm
from services.matching import run_matching
from services.vector_index import FaissVectorIndex, get_vector_index

router = APIRouter(
    prefix="/jobs/{job_id}",
    tags=["Matching"],
)


# ========== マッチング実行（similarity 降順） ==========
@router.post("/match", response_model=list[schemas.MatchResultItem])
def match_job(
    job_id: int,
    req: schemas.MatchRequest,
    db: Session = Depends(get_db),
    index: FaissVectorIndex = Depends(get_vector_index),
    llm: TextGenerator = Depends(get_llm),
):
    return run_matching(db, job_id, req.top_k, req.user_id, index=index, llm=llm)


# ========== 比較結果の一覧＋集計（集計は現在ページ分） ==========
@router.get("/comparisons", response_model=schemas.ComparisonPage)
def list_comparisons(
    job_id: int,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("fit", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = None,
    score_filter: str = Query("all", alias="scoreFilter"),
):
    return comparisons.list_comparisons(
        db,
        job_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        search=search,
        score_filter=score_filter,
    )


# ========== CSV 出力 ==========
@router.get("/comparisons/export")
def export_comparisons(
    job_id: int,
    db: Session = Depends(get_db),
    sort_by: str = Query("fit", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = None,
    score_filter: str = Query("all", alias="scoreFilter"),
):
    filename, body = comparisons.export_comparisons_csv(
        db, job_id, sort_by=sort_by, sort_order=sort_order, search=search, score_filter=score_filter
    )
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
