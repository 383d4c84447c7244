"""
比較結果の一覧・集計・履歴・CSV 出力。

スコアは常に Comparison.effective_score（fit_score が無ければ similarity）で扱う。
集計（analytics）は全件ではなく、返却する「現在のページ」に対して計算する。
"""
from __future__ import annotations

import csv
import io
import math
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from errors import ValidationError, require_text
from models import SCORE_BUCKETS, Comparison, Job, Resume, score_bucket, score_label
from schemas import (
    Analytics,
    ComparisonFilters,
    ComparisonOut,
    ComparisonPage,
    HistoryItem,
    Pagination,
    ResumeFilters,
    ResumeListItem,
    ResumePage,
)
from services import store

COMPARISON_SORT_KEYS = ("fit", "similarity", "candidate", "createdAt")
RESUME_SORT_KEYS = ("createdAt", "candidate", "similarity", "fit")
SCORE_FILTERS = ("all",) + tuple(name for name, _, _ in SCORE_BUCKETS)
RESUME_STATUSES = ("all", "matched", "unmatched")


def _check_choice(value: str, choices: Sequence[str], field: str) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of {', '.join(choices)}")
    return value


def _check_paging(page: int, limit: int) -> None:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")


def _bucket_condition(name: str):
    for bucket, low, high in SCORE_BUCKETS:
        if bucket != name:
            continue
        conds = []
        if low is not None:
            conds.append(Comparison.effective_score >= low)
        if high is not None:
            conds.append(Comparison.effective_score < high)
        return and_(*conds)
    raise ValidationError(f"unknown score bucket {name}")


def _pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_items=total,
        items_per_page=limit,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def to_comparison_out(c: Comparison, candidate_name: Optional[str] = None) -> ComparisonOut:
    return ComparisonOut(
        id=c.id,
        resume_id=c.resume_id,
        candidate_name=candidate_name,
        similarity=c.similarity,
        fit_score=c.fit_score,
        effective_score=c.effective_score,
        grade=score_label(c.effective_score),
        matching_skills=list(c.matching_skills or []),
        missing_skills=list(c.missing_skills or []),
        summary=c.summary,
        created_at=c.created_at,
    )


def compute_analytics(items: Sequence[ComparisonOut]) -> Analytics:
    stats = Analytics(total=len(items))
    for item in items:
        bucket = score_bucket(item.effective_score)
        setattr(stats, bucket, getattr(stats, bucket) + 1)
    if items:
        stats.average_score = sum(i.effective_score for i in items) / len(items)
    return stats


# ------ 比較結果の一覧 ------
def _comparison_rows(
    job_id: int,
    search: Optional[str],
    score_filter: str,
    sort_by: str,
    sort_order: str,
):
    stmt = (
        select(Comparison, Resume.candidate_name)
        .join(Resume, Resume.id == Comparison.resume_id)
        .where(Comparison.job_id == job_id)
    )
    if search:
        stmt = stmt.where(Resume.candidate_name.ilike(f"%{search}%"))
    if score_filter != "all":
        stmt = stmt.where(_bucket_condition(score_filter))

    column = {
        "fit": Comparison.effective_score,
        "similarity": Comparison.similarity,
        "candidate": Resume.candidate_name,
        "createdAt": Comparison.created_at,
    }[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()
    return stmt.order_by(ordering, Comparison.id)


def list_comparisons(
    db: Session,
    job_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "fit",
    sort_order: str = "desc",
    search: Optional[str] = None,
    score_filter: str = "all",
) -> ComparisonPage:
    _check_paging(page, limit)
    _check_choice(sort_by, COMPARISON_SORT_KEYS, "sortBy")
    _check_choice(sort_order, ("asc", "desc"), "sortOrder")
    _check_choice(score_filter, SCORE_FILTERS, "scoreFilter")
    store.get_job(db, job_id)

    stmt = _comparison_rows(job_id, search, score_filter, sort_by, sort_order)
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = db.execute(stmt.offset((page - 1) * limit).limit(limit)).all()
    data = [to_comparison_out(c, name) for c, name in rows]

    return ComparisonPage(
        data=data,
        pagination=_pagination(page, limit, total),
        analytics=compute_analytics(data),
        filters=ComparisonFilters(
            search=search or None, score_filter=score_filter, sort_by=sort_by, sort_order=sort_order
        ),
    )


def export_comparisons_csv(
    db: Session,
    job_id: int,
    *,
    sort_by: str = "fit",
    sort_order: str = "desc",
    search: Optional[str] = None,
    score_filter: str = "all",
) -> Tuple[str, str]:
    """(ファイル名, CSV本文) を返す。ページングせず条件に合う全件を出力。"""
    _check_choice(sort_by, COMPARISON_SORT_KEYS, "sortBy")
    _check_choice(sort_order, ("asc", "desc"), "sortOrder")
    _check_choice(score_filter, SCORE_FILTERS, "scoreFilter")
    job = store.get_job(db, job_id)

    rows = db.execute(_comparison_rows(job_id, search, score_filter, sort_by, sort_order)).all()

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(
        ["Rank", "Candidate", "Fit Score (%)", "Similarity (%)", "Grade", "Matching Skills", "Missing Skills", "Summary"]
    )
    for rank, (c, name) in enumerate(rows, start=1):
        writer.writerow(
            [
                rank,
                name or "",
                f"{c.effective_score * 100:.1f}",
                f"{c.similarity * 100:.1f}",
                score_label(c.effective_score),
                ", ".join(c.matching_skills or []),
                ", ".join(c.missing_skills or []),
                c.summary or "",
            ]
        )
    filename = f"{job.title or 'job'}-analysis.csv"
    return filename, buf.getvalue()


# ------ 履歴書の一覧（比較結果つき） ------
def list_resumes(
    db: Session,
    job_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    search: Optional[str] = None,
    status: str = "all",
) -> ResumePage:
    _check_paging(page, limit)
    _check_choice(sort_by, RESUME_SORT_KEYS, "sortBy")
    _check_choice(sort_order, ("asc", "desc"), "sortOrder")
    _check_choice(status, RESUME_STATUSES, "status")
    store.get_job(db, job_id)

    stmt = (
        select(Resume, Comparison)
        .outerjoin(Comparison, and_(Comparison.resume_id == Resume.id, Comparison.job_id == job_id))
        .where(Resume.job_id == job_id)
    )
    if search:
        stmt = stmt.where(Resume.candidate_name.ilike(f"%{search}%"))
    if status == "matched":
        stmt = stmt.where(Comparison.id.is_not(None))
    elif status == "unmatched":
        stmt = stmt.where(Comparison.id.is_(None))

    column = {
        "createdAt": Resume.created_at,
        "candidate": Resume.candidate_name,
        "similarity": func.coalesce(Comparison.similarity, 0.0),
        "fit": func.coalesce(Comparison.effective_score, 0.0),
    }[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()
    stmt = stmt.order_by(ordering, Resume.id.desc())

    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = db.execute(stmt.offset((page - 1) * limit).limit(limit)).all()
    data = [
        ResumeListItem(
            id=r.id,
            candidate=r.candidate_name,
            created_at=r.created_at,
            is_matched=c is not None,
            match_result=to_comparison_out(c, r.candidate_name) if c is not None else None,
        )
        for r, c in rows
    ]
    return ResumePage(
        data=data,
        pagination=_pagination(page, limit, total),
        filters=ResumeFilters(search=search or None, status=status, sort_by=sort_by, sort_order=sort_order),
    )


# ------ ユーザーごとの履歴 ------
def user_history(db: Session, user_id: Optional[str]) -> List[HistoryItem]:
    require_text(user_id, "x-user-id")
    rows = db.execute(
        select(Comparison, Job.title, Resume.candidate_name)
        .outerjoin(Job, Job.id == Comparison.job_id)
        .outerjoin(Resume, Resume.id == Comparison.resume_id)
        .where(Comparison.user_id == user_id)
        .order_by(Comparison.created_at.desc(), Comparison.id.desc())
    ).all()
    return [
        HistoryItem(
            when=c.created_at,
            job_id=c.job_id,
            job=title,
            resume_id=c.resume_id,
            candidate=name,
            similarity=c.similarity,
            fit_score=c.effective_score,
            matching=list(c.matching_skills or []),
            missing=list(c.missing_skills or []),
            verdict=c.summary,
        )
        for c, title, name in rows
    ]
