"""
名前空間つきベクトル索引（jobs / resumes）。

FAISS の内積検索を L2 正規化済みベクトルに対して行うのでスコアはコサイン類似度。
メタデータの一致条件（filter）で候補を絞ってから検索する。
VECTOR_INDEX_DIR を設定すると名前空間ごとに .npz へ保存し、再起動後も読み戻す。
"""
from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import faiss
import numpy as np
from dotenv import load_dotenv

from errors import UpstreamFailure

load_dotenv()

logger = logging.getLogger(__name__)

JOBS_NAMESPACE = "jobs"
RESUMES_NAMESPACE = "resumes"
VECTOR_INDEX_DIR = os.getenv("VECTOR_INDEX_DIR")


@dataclass
class VectorRecord:
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None


def _metadata_matches(metadata: Mapping[str, Any], flt: Optional[Mapping[str, Any]]) -> bool:
    """{"jobId": 3} の完全一致と {"resumeId": {"$in": [...]}} に対応。"""
    if not flt:
        return True
    for key, cond in flt.items():
        value = metadata.get(key)
        if isinstance(cond, Mapping):
            if "$eq" in cond and value != cond["$eq"]:
                return False
            if "$in" in cond and value not in cond["$in"]:
                return False
        elif value != cond:
            return False
    return True


class FaissVectorIndex:
    def __init__(self, persist_dir: Optional[str] = None):
        self.persist_dir = Path(persist_dir) if persist_dir else None
        self._namespaces: Dict[str, Dict[str, VectorRecord]] = {}
        self._lock = threading.RLock()
        if self.persist_dir is not None:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    # ---------- 書き込み ----------
    def upsert(self, namespace: str, records: Iterable[VectorRecord]) -> int:
        records = list(records)
        with self._lock:
            ns = self._namespaces.setdefault(namespace, {})
            dim = self._dimension(ns)
            for r in records:
                if dim is not None and len(r.values) != dim:
                    raise UpstreamFailure(
                        f"vector {r.id} has dimension {len(r.values)}, namespace {namespace} expects {dim}"
                    )
                dim = len(r.values)
                ns[r.id] = VectorRecord(r.id, [float(v) for v in r.values], dict(r.metadata))
            self._save(namespace)
        logger.debug("Upserted %d vectors into %s", len(records), namespace)
        return len(records)

    def delete(
        self,
        namespace: str,
        ids: Optional[Iterable[str]] = None,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> int:
        if ids is None and not filter:
            raise ValueError("delete needs ids or a metadata filter")
        with self._lock:
            ns = self._namespaces.get(namespace, {})
            if ids is not None:
                targets = [i for i in ids if i in ns]
            else:
                targets = [r.id for r in ns.values() if _metadata_matches(r.metadata, filter)]
            for i in targets:
                del ns[i]
            if targets:
                self._save(namespace)
        logger.debug("Deleted %d vectors from %s", len(targets), namespace)
        return len(targets)

    # ---------- 読み出し ----------
    def fetch(self, namespace: str, ids: Iterable[str]) -> Dict[str, List[float]]:
        with self._lock:
            ns = self._namespaces.get(namespace, {})
            return {i: list(ns[i].values) for i in ids if i in ns}

    def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Mapping[str, Any]] = None,
        include_metadata: bool = True,
    ) -> List[VectorMatch]:
        with self._lock:
            ns = self._namespaces.get(namespace, {})
            candidates = [r for r in ns.values() if _metadata_matches(r.metadata, filter)]
        if not candidates or top_k <= 0:
            return []

        dim = len(candidates[0].values)
        if len(vector) != dim:
            raise UpstreamFailure(f"query vector has dimension {len(vector)}, namespace {namespace} expects {dim}")

        try:
            matrix = np.asarray([r.values for r in candidates], dtype=np.float32)
            query = np.asarray([vector], dtype=np.float32)
            faiss.normalize_L2(matrix)
            faiss.normalize_L2(query)
            index = faiss.IndexFlatIP(dim)
            index.add(matrix)
            scores, positions = index.search(query, min(top_k, len(candidates)))
        except (RuntimeError, ValueError) as e:
            raise UpstreamFailure(f"vector query failed: {e}") from e

        matches: List[VectorMatch] = []
        for score, pos in zip(scores[0], positions[0]):
            if pos < 0:
                continue
            rec = candidates[pos]
            matches.append(
                VectorMatch(
                    id=rec.id,
                    score=float(score),
                    metadata=dict(rec.metadata) if include_metadata else None,
                )
            )
        return matches

    def count(self, namespace: str) -> int:
        with self._lock:
            return len(self._namespaces.get(namespace, {}))

    # ---------- 永続化 ----------
    @staticmethod
    def _dimension(ns: Dict[str, VectorRecord]) -> Optional[int]:
        for r in ns.values():
            return len(r.values)
        return None

    def _path(self, namespace: str) -> Path:
        return self.persist_dir / f"{namespace}.npz"

    def _save(self, namespace: str) -> None:
        if self.persist_dir is None:
            return
        ns = self._namespaces.get(namespace, {})
        ids = list(ns.keys())
        path = self._path(namespace)
        # 一時ファイルに書いてから置き換える（書き込み途中のファイルを読ませない）
        tmp = path.with_name(path.name + ".tmp")
        try:
            with open(tmp, "wb") as f:
                np.savez(
                    f,
                    ids=np.asarray(ids, dtype=str),
                    vectors=np.asarray([ns[i].values for i in ids], dtype=np.float32),
                    metadata=np.asarray(json.dumps([ns[i].metadata for i in ids])),
                )
            os.replace(tmp, path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

    def _load(self) -> None:
        for path in sorted(self.persist_dir.glob("*.npz")):
            data = np.load(path, allow_pickle=False)
            metadata = json.loads(str(data["metadata"]))
            ns = {}
            for i, vec, meta in zip(data["ids"].tolist(), data["vectors"], metadata):
                ns[i] = VectorRecord(i, vec.astype(float).tolist(), meta)
            self._namespaces[path.stem] = ns
            logger.info("Loaded %d vectors for namespace %s", len(ns), path.stem)


_index: Optional[FaissVectorIndex] = None


def get_vector_index() -> FaissVectorIndex:
    global _index
    if _index is None:
        _index = FaissVectorIndex(VECTOR_INDEX_DIR)
    return _index
