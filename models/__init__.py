from database import Base

# 求人
from .job import Job, job_vector_id

# 履歴書・チャンク
from .resume import Resume, ResumeChunk, chunk_vector_id

# 比較結果
from .comparison import Comparison, SCORE_BUCKETS, score_bucket, score_label

__all__ = (
    "Base",
    "Job",
    "job_vector_id",
    "Resume",
    "ResumeChunk",
    "chunk_vector_id",
    "Comparison",
    "SCORE_BUCKETS",
    "score_bucket",
    "score_label",
)
