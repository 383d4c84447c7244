"""
テキスト → 固定長ベクトル。

既定は OpenAI の埋め込み API。EMBEDDING_BACKEND=sbert ならローカルの
SentenceTransformer を使う。どちらも失敗時はゼロベクトルで誤魔化さず
UpstreamFailure を投げ、呼び出し側の処理ごと中断させる。
"""
from __future__ import annotations

import logging
import os
from typing import List, Optional, Protocol

from dotenv import load_dotenv
from openai import OpenAI, OpenAIError

from errors import UpstreamFailure

load_dotenv()

logger = logging.getLogger(__name__)

EMBEDDING_BACKEND = os.getenv("EMBEDDING_BACKEND", "openai").lower()
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
SBERT_MODEL = os.getenv("SBERT_MODEL", "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2")
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "30"))


class Embedder(Protocol):
    def embed(self, text: str) -> List[float]: ...


class OpenAIEmbedder:
    def __init__(self, client: Optional[OpenAI] = None, model: str = EMBEDDING_MODEL):
        self.model = model
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise UpstreamFailure("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=api_key, timeout=OPENAI_TIMEOUT)
        return self._client

    def embed(self, text: str) -> List[float]:
        try:
            resp = self.client.embeddings.create(model=self.model, input=text)
        except OpenAIError as e:
            raise UpstreamFailure(f"embedding request failed: {e}") from e
        return list(resp.data[0].embedding)


class SBERTEmbedder:
    """SentenceTransformer を使うローカル埋め込み（正規化済みベクトルを返す）。"""

    def __init__(self, model_name: str = SBERT_MODEL):
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)

    def embed(self, text: str) -> List[float]:
        try:
            vec = self.model.encode(text, normalize_embeddings=True)
        except Exception as e:
            raise UpstreamFailure(f"SBERT encoding failed: {e}") from e
        return [float(v) for v in vec]


_embedder: Optional[Embedder] = None


def get_embedder() -> Embedder:
    """FastAPI の Depends 用。プロセス内で1つだけ生成する。"""
    global _embedder
    if _embedder is None:
        if EMBEDDING_BACKEND == "sbert":
            logger.info("Loading SBERT embedder %s", SBERT_MODEL)
            _embedder = SBERTEmbedder()
        else:
            _embedder = OpenAIEmbedder()
    return _embedder
