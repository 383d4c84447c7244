"""
求人・履歴書の取り込み。

履歴書の順序: チャンク化 → DB に行を作る → 埋め込み → チャンク行 → ベクトル索引へ upsert。
DB とベクトル索引をまたぐ原子性は無い。DB の行を正とし、索引は作り直せる
派生データとして扱う。どこで失敗しても例外は呼び出し側まで伝える。
"""
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence

from sqlalchemy.orm import Session

from errors import ValidationError, require_text
from models import chunk_vector_id, job_vector_id
from services import store
from services.embeddings import Embedder
from services.vector_index import JOBS_NAMESPACE, RESUMES_NAMESPACE, FaissVectorIndex, VectorRecord

logger = logging.getLogger(__name__)

EMBEDDING_CONCURRENCY = int(os.getenv("EMBEDDING_CONCURRENCY", "4"))

Chunker = Callable[[str], List[str]]


def embed_all(pieces: Sequence[str], embedder: Embedder, max_workers: int = EMBEDDING_CONCURRENCY) -> List[List[float]]:
    """
    チャンクを並行して埋め込む。戻り値はチャンクと同じ順番。
    1件でも失敗したら例外を投げる（全件待ってから判定）。
    """
    if not pieces:
        return []
    workers = max(1, min(max_workers, len(pieces)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        # map は入力順で結果を返すので chunk_index と対応が崩れない
        return list(pool.map(embedder.embed, pieces))


def ingest_job(db: Session, title: str, jd_text: str, *, embedder: Embedder, index: FaissVectorIndex) -> int:
    require_text(title, "title")
    require_text(jd_text, "jdText")

    logger.info("Creating job %r", title)
    vector = embedder.embed(jd_text)
    logger.info("Job embedding created, dim=%d", len(vector))

    job = store.create_job(db, title=title, jd_text=jd_text, embedding=vector)
    logger.info("Job stored with id=%s", job.id)

    index.upsert(
        JOBS_NAMESPACE,
        [VectorRecord(id=job_vector_id(job.id), values=vector, metadata={"jobId": job.id})],
    )
    logger.info("Job embedding stored as %s", job_vector_id(job.id))
    return job.id


def ingest_resume(
    db: Session,
    job_id: int,
    candidate_name: str,
    full_text: str,
    *,
    embedder: Embedder,
    index: FaissVectorIndex,
    chunker: Chunker,
) -> int:
    require_text(candidate_name, "candidateName")
    require_text(full_text, "fullText")
    store.get_job(db, job_id)

    # 1) チャンク化（DB に何も書く前に弾く）
    pieces = chunker(full_text)
    if not pieces:
        raise ValidationError("fullText contains no indexable text")

    # 2) 履歴書の行
    resume = store.create_resume(db, job_id=job_id, candidate_name=candidate_name, full_text=full_text)
    logger.info("Resume %s created for job %s (%s)", resume.id, job_id, candidate_name)

    # 3) 埋め込み
    vectors = embed_all(pieces, embedder)
    logger.info("Resume %s: %d chunks embedded", resume.id, len(vectors))

    # 4) チャンク行（全件か0件か）
    store.insert_chunks(db, resume.id, pieces, vectors)

    # 5) ベクトル索引（DBとは別系統。失敗しても DB 側は残る）
    index.upsert(
        RESUMES_NAMESPACE,
        [
            VectorRecord(
                id=chunk_vector_id(resume.id, i),
                values=vec,
                metadata={"resumeId": resume.id, "jobId": job_id},
            )
            for i, vec in enumerate(vectors)
        ],
    )
    logger.info("Resume %s: %d vectors upserted", resume.id, len(vectors))
    return resume.id
