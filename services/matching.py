from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import NotFound, require_text
from models import Comparison, Job, Resume, job_vector_id
from schemas import MatchResultItem
from services import store
from services.enrichment import FALLBACK_SUMMARY, Enrichment, enrich
from services.llm import TextGenerator
from services.vector_index import JOBS_NAMESPACE, RESUMES_NAMESPACE, FaissVectorIndex, VectorMatch

logger = logging.getLogger(__name__)

# LLM 呼び出しの同時実行数（1 なら逐次）
MATCH_CONCURRENCY = int(os.getenv("MATCH_CONCURRENCY", "1"))


# ---------- 共通ユーティリティ ----------
def aggregate_best_per_resume(matches: Iterable[VectorMatch]) -> Dict[int, float]:
    """
    チャンク単位のヒットを履歴書単位にまとめ、最大スコアだけ残す。
    metadata に resumeId が無いヒットは捨てる。負のスコアは 0 扱い。
    """
    best: Dict[int, float] = {}
    for m in matches:
        meta = m.metadata or {}
        rid = meta.get("resumeId")
        if rid is None:
            logger.warning("Match %s has no resumeId metadata; skipped", m.id)
            continue
        rid = int(rid)
        score = min(1.0, float(m.score))
        best[rid] = max(best.get(rid, 0.0), score)
    return best


def resolve_job_embedding(job: Job, index: FaissVectorIndex) -> List[float]:
    """索引に保存済みの求人ベクトルを優先し、無ければ DB のキャッシュ列を使う。"""
    key = job_vector_id(job.id)
    fetched = index.fetch(JOBS_NAMESPACE, [key])
    if key in fetched:
        return fetched[key]
    if job.jd_embedding:
        logger.warning("Job %s vector missing from index; using cached embedding column", job.id)
        return list(job.jd_embedding)
    raise NotFound("no_embedding", f"Job {job.id} has no embedding")


def _reused_item(c: Comparison, resume: Optional[Resume]) -> MatchResultItem:
    return MatchResultItem(
        resume_id=c.resume_id,
        candidate_name=resume.candidate_name if resume else None,
        similarity=c.similarity,
        fit_score=c.effective_score,
        matching_skills=list(c.matching_skills or []),
        missing_skills=list(c.missing_skills or []),
        summary=c.summary or "",
        status="reused",
    )


def _degraded_item(resume: Resume, similarity: float) -> MatchResultItem:
    return MatchResultItem(
        resume_id=resume.id,
        candidate_name=resume.candidate_name,
        similarity=similarity,
        fit_score=similarity,
        matching_skills=[],
        missing_skills=[],
        summary=FALLBACK_SUMMARY,
        status="degraded",
    )


def _enrich_one(job_text: str, resume: Resume, similarity: float, llm: TextGenerator) -> Optional[Enrichment]:
    # 1件の失敗でバッチ全体は止めない
    try:
        return enrich(job_text, resume.full_text, similarity, llm)
    except Exception as e:
        logger.warning("Enrichment failed for resume %s: %s", resume.id, e, exc_info=True)
        return None


def _enrich_all(
    job_text: str,
    pending: Sequence[Tuple[Resume, float]],
    llm: TextGenerator,
    concurrency: int,
) -> List[Optional[Enrichment]]:
    if concurrency <= 1 or len(pending) <= 1:
        return [_enrich_one(job_text, r, sim, llm) for r, sim in pending]
    with ThreadPoolExecutor(max_workers=min(concurrency, len(pending))) as pool:
        return list(pool.map(lambda p: _enrich_one(job_text, p[0], p[1], llm), pending))


# ---------- マッチング本体 ----------
def run_matching(
    db: Session,
    job_id: int,
    top_k: int,
    user_id: str,
    *,
    index: FaissVectorIndex,
    llm: TextGenerator,
    concurrency: int = MATCH_CONCURRENCY,
) -> List[MatchResultItem]:
    """
    求人に対して履歴書をベクトル検索し、LLM の評価を付けて返す（similarity 降順）。
    比較済みの履歴書は保存済みの結果をそのまま使い、LLM は呼ばない。
    """
    require_text(user_id, "userId")

    # 1) 求人 2) 求人ベクトル
    job = store.get_job(db, job_id)
    job_vector = resolve_job_embedding(job, index)

    # 3) 履歴書の有無
    if store.count_resumes(db, job_id) == 0:
        raise NotFound("no_resumes", f"No resumes found for job {job_id}")

    # 4) ベクトル検索（この求人の履歴書だけ）
    matches = index.query(
        RESUMES_NAMESPACE, job_vector, top_k, filter={"jobId": job_id}, include_metadata=True
    )
    logger.info("Job %s: %d chunk matches from index", job_id, len(matches))

    # 5) 履歴書ごとの最大スコア
    best = aggregate_best_per_resume(matches)
    if not best:
        raise NotFound("no_matches", f"No matches found for job {job_id}")

    # 6) 比較済み / 新規に分ける
    existing = store.comparisons_by_resume(db, job_id)
    resumes = store.resume_texts(db, list(best))

    results: List[MatchResultItem] = []
    pending: List[Tuple[Resume, float]] = []
    for rid, sim in best.items():
        cached = existing.get(rid)
        if cached is not None:
            results.append(_reused_item(cached, resumes.get(rid)))
            continue
        resume = resumes.get(rid)
        if resume is None:
            logger.warning("Resume %s is in the index but not in the database; skipped", rid)
            continue
        pending.append((resume, sim))

    # 7) 新規分を LLM で評価して保存
    logger.info("Job %s: %d reused, %d to analyse", job_id, len(results), len(pending))
    outcomes = _enrich_all(job.jd_text, pending, llm, concurrency)
    for (resume, sim), enrichment in zip(pending, outcomes):
        if enrichment is None:
            results.append(_degraded_item(resume, sim))
            continue

        try:
            store.upsert_comparison(
                db,
                user_id=user_id,
                job_id=job_id,
                resume_id=resume.id,
                similarity=sim,
                fit_score=enrichment.fit_score,
                matching_skills=enrichment.matching_skills,
                missing_skills=enrichment.missing_skills,
                summary=enrichment.summary,
            )
        except SQLAlchemyError:
            # 保存に失敗しても結果は返す（次回の実行で再評価される）
            db.rollback()
            logger.exception("Failed to store comparison for job %s resume %s", job_id, resume.id)

        results.append(
            MatchResultItem(
                resume_id=resume.id,
                candidate_name=resume.candidate_name,
                similarity=sim,
                fit_score=enrichment.fit_score,
                matching_skills=enrichment.matching_skills,
                missing_skills=enrichment.missing_skills,
                summary=enrichment.summary,
                status="enriched",
            )
        )

    # 8) similarity 降順
    results.sort(key=lambda r: r.similarity, reverse=True)
    return results
