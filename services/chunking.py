"""
トークン単位のチャンク分割。

埋め込みモデルのサブワードトークン（tiktoken）で窓を切るので、
同じエンコーディングなら実行ごとに境界が変わらない。
窓 i はトークン位置 i * (window - overlap) から始まる（文字の途中なら直前の文字境界から）。
"""
from __future__ import annotations

import math
import os
from typing import List, Optional, Protocol, Sequence, Tuple

import tiktoken

CHUNK_WINDOW = 500
CHUNK_OVERLAP = 50
TOKENIZER_ENCODING = os.getenv("TOKENIZER_ENCODING", "cl100k_base")


class Encoding(Protocol):
    def encode(self, text: str, **kwargs) -> List[int]: ...
    def decode(self, tokens: Sequence[int]) -> str: ...
    def decode_single_token_bytes(self, token: int) -> bytes: ...


def expected_chunk_count(n_tokens: int, window: int = CHUNK_WINDOW, overlap: int = CHUNK_OVERLAP) -> int:
    """ceil(max(1, tokens - overlap) / (window - overlap))"""
    if n_tokens <= 0:
        return 0
    return math.ceil(max(1, n_tokens - overlap) / (window - overlap))


class TokenChunker:
    def __init__(
        self,
        encoding: Optional[Encoding] = None,
        window: int = CHUNK_WINDOW,
        overlap: int = CHUNK_OVERLAP,
        encoding_name: str = TOKENIZER_ENCODING,
    ):
        if window <= 0 or not 0 <= overlap < window:
            raise ValueError("chunk window must be positive and larger than overlap")
        self.window = window
        self.overlap = overlap
        self.encoding_name = encoding_name
        self._encoding = encoding

    @property
    def encoding(self) -> Encoding:
        # tiktoken はエンコーディング表を初回にロードするため遅延生成
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    @property
    def stride(self) -> int:
        return self.window - self.overlap

    def _char_boundaries(self, tokens: Sequence[int]) -> List[bool]:
        """
        boundaries[i] は tokens[:i] が UTF-8 の文字の切れ目で終わるなら True。
        cl100k は漢字や絵文字を複数トークンに分けるので、途中で切ると文字が壊れる。
        """
        pieces = [self.encoding.decode_single_token_bytes(t) for t in tokens]
        data = b"".join(pieces)
        boundaries = []
        offset = 0
        for piece in pieces:
            # 継続バイト（0b10xxxxxx）から始まる位置は文字の途中
            boundaries.append(offset >= len(data) or (data[offset] & 0xC0) != 0x80)
            offset += len(piece)
        boundaries.append(True)
        return boundaries

    def token_spans(self, tokens: Sequence[int]) -> List[Tuple[int, int]]:
        """
        窓ごとの (start, end)。窓の数は expected_chunk_count と同じ。
        文字の途中にかかる端は外側へずらす（start は前へ、end は後ろへ）。
        """
        if not tokens:
            return []
        n = len(tokens)
        boundaries = self._char_boundaries(tokens)
        spans = []
        for start in range(0, max(1, n - self.overlap), self.stride):
            end = min(start + self.window, n)
            while start > 0 and not boundaries[start]:
                start -= 1
            while end < n and not boundaries[end]:
                end += 1
            spans.append((start, end))
        return spans

    def chunk(self, text: str) -> List[str]:
        # 本文中の "<|endoftext|>" などもただの文字列として扱う
        tokens = self.encoding.encode(text, disallowed_special=())
        return [self.encoding.decode(tokens[start:end]) for start, end in self.token_spans(tokens)]

    __call__ = chunk


_default_chunker: Optional[TokenChunker] = None


def get_chunker() -> TokenChunker:
    global _default_chunker
    if _default_chunker is None:
        _default_chunker = TokenChunker()
    return _default_chunker


def chunk(text: str) -> List[str]:
    return get_chunker().chunk(text)
