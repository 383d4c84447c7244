"""
LLM による定性評価（一致スキル・不足スキル・要約・適合スコア）。

応答の解析は ``parse_enrichment_response`` に切り出してあり、
ネットワークなしでテストできる。
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import List

from errors import MalformedModelOutput
from services.llm import TextGenerator

logger = logging.getLogger(__name__)

LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))

FALLBACK_SUMMARY = "Analysis failed, but candidate shows good similarity score."

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*")


@dataclass
class Enrichment:
    matching_skills: List[str] = field(default_factory=list)
    missing_skills: List[str] = field(default_factory=list)
    summary: str = ""
    fit_score: float = 0.0


def build_enrichment_prompt(job_text: str, resume_text: str, similarity: float) -> str:
    return f"""You are an experienced technical recruiter.
Compare the job description with the candidate résumé.

Job Description:
{job_text}

Candidate Résumé:
{resume_text}

Vector similarity between the two documents: {similarity * 100:.1f}%

Tasks:
1) List the skills that appear in both the job description and the résumé.
2) List the skills the job requires that are missing from the résumé.
3) Write a one-sentence summary of the candidate's fit.
4) Give an overall fit score between 0 and 1.

Respond with a JSON object containing exactly these fields and nothing else:
{{"matching_skills": [], "missing_skills": [], "summary": "", "fit_score": 0.0}}
"""


def _strip_to_json_object(raw: str) -> str:
    text = _FENCE_RE.sub("", raw or "")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise MalformedModelOutput("model response does not contain a JSON object")
    return text[start:end + 1]


def _string_list(data: dict, key: str) -> List[str]:
    value = data.get(key)
    if not isinstance(value, list):
        raise MalformedModelOutput(f"{key} must be an array")
    return [str(v) for v in value]


def parse_enrichment_response(raw: str) -> Enrichment:
    """
    モデルの生テキストを Enrichment に変換する。
    コードフェンスを除き、最初の "{" から最後の "}" までを JSON として読む。
    形式不正は MalformedModelOutput。fit_score の範囲チェックはしない。
    """
    try:
        data = json.loads(_strip_to_json_object(raw))
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(f"model response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedModelOutput("model response must be a JSON object")

    matching = _string_list(data, "matching_skills")
    missing = _string_list(data, "missing_skills")

    summary = data.get("summary")
    if not isinstance(summary, str):
        raise MalformedModelOutput("summary must be a string")

    fit_score = data.get("fit_score")
    # bool は int のサブクラスなので明示的に弾く
    if isinstance(fit_score, bool) or not isinstance(fit_score, (int, float)):
        raise MalformedModelOutput("fit_score must be a number")

    return Enrichment(
        matching_skills=matching,
        missing_skills=missing,
        summary=summary,
        fit_score=float(fit_score),
    )


def enrich(job_text: str, resume_text: str, similarity: float, llm: TextGenerator) -> Enrichment:
    """
    1件分の評価。通信エラー・解析エラーはそのまま呼び出し側へ（再試行しない）。
    fit_score が [0, 1] の外なら similarity に置き換える。
    """
    prompt = build_enrichment_prompt(job_text, resume_text, similarity)
    raw = llm.generate(prompt, temperature=LLM_TEMPERATURE)
    result = parse_enrichment_response(raw)
    if not 0.0 <= result.fit_score <= 1.0:
        logger.warning("fit_score %s out of range; using similarity %.4f", result.fit_score, similarity)
        result.fit_score = similarity
    return result
