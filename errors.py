"""
サービス層で使う例外。

ルーターは個別に HTTPException へ変換せず、main.py の例外ハンドラが
``status_code`` / ``code`` を見て JSON エラーにする。
"""
from __future__ import annotations


class MatcherError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class ValidationError(MatcherError):
    """必須入力の欠落・空文字。処理は実行しない。"""

    status_code = 400
    code = "validation_error"


class NotFound(MatcherError):
    """
    参照先が存在しない。``code`` で理由を区別する:
    job_not_found / resume_not_found / no_embedding / no_resumes / no_matches
    """

    status_code = 404
    code = "not_found"

    def __init__(self, reason: str, message: str):
        super().__init__(message, code=reason)

    @property
    def reason(self) -> str:
        return self.code


class UpstreamFailure(MatcherError):
    """埋め込み・ベクトル索引・LLM など外部呼び出しの失敗（タイムアウト含む）。"""

    status_code = 502
    code = "upstream_failure"


class MalformedModelOutput(UpstreamFailure):
    """LLM の応答が JSON として読めない、または項目の型が不正。"""

    code = "malformed_model_output"


def require_text(value: str | None, field: str) -> str:
    """空白のみも未入力扱いにして ValidationError を投げる。"""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return value
