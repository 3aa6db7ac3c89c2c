from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from schemas import HistoryMessage, OutboundMessage

# history 각 항목 content 최대 길이 (문자 수)
HISTORY_CONTENT_CAP = 4000

# 운영에서 프롬프트 교체용. JSON 파일 경로
SYSTEM_PROMPT_FILE = os.getenv("SYSTEM_PROMPT_FILE")

# --- 기본 system prompt 데이터 (대시보드 어시스턴트) ---
BEHAVIOR_RULES: List[str] = [
    "You are an in-page assistant for a data/ERP dashboard.",
    "Be concise, actionable, and cite steps if giving instructions.",
    "When asked about the page, infer from visible sections (tables, cards, filters).",
    "If the user asks for confidential data or to perform risky actions, refuse and offer safer alternatives.",
    "Prefer numbered steps; keep responses < 250 words unless explicitly asked for more.",
    "If math is needed, compute carefully.",
    "When asked about the analysis, use the data from the visible sections (tables, cards, filters).",
]

PORTFOLIO_STRATEGY: List[str] = [
    "When asked about the Portfolio Optimisation Strategy, respond based on the following context: ",
    "- Retain High-Value Users: Focus premium services on 23 high-value users generating substantial ROI (Users 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 22, 30, 31, 32, 33, 34)",
    "- Optimise Moderate Users: Transition 11 moderate users to lower-cost alternatives or hybrid models (Users 15, 17, 18, 21, 23, 26, 27, 29, 35)",
    "- Discontinue Low-Value Users: Consider eliminating services for 8 low-engagement users showing no measurable value (Users 16, 19, 20, 24, 25, 28, 36, 37, 38)",
    "- Negotiation Position: Strong foundation for 20-30% cost reduction while maintaining core value delivery, supported by user preference for optimisation and demonstrated alternative availability.",
    "- Service Restructuring: Concentrate on report access and strategic analyst calls while reducing conference allocations, aligning with demonstrated usage patterns and value attribution.",
]

USER_ACTIVITY: List[str] = [
    "When asked about user data, respond based on the following context: ",
    "- Ace Tan (CISO): 1,749 reports, 47 calls, 14 conferences = 1,810 total activities (Average: 90.5 per month).",
    "- Dom Chan (Gartner for CIO): 559 reports, 31 calls, 1 conference = 591 total activities (Average: 29.6 per month).",
    "- Yong NB (GITL-Advisor): 566 reports, 15 calls, 2 conferences = 583 total activities (Average: 29.2 per month).",
    "- Tee YY (GITL-Advisor): 530 reports, 8 calls, 1 conference = 539 total activities (Average: 27.0 per month).",
    "- YZ Feng (CDAO): 300 reports, 22 calls, 7 conferences = 329 total activities (Average: 16.5 per month).",
    "- AGGREGATE TOTALS: 7,003 total reports, 332 total calls, 48 total conferences, 7,383 total activities with average 194.3 activities per user.",
]

PROMPT_SECTIONS = ("rules", "portfolio_strategy", "user_activity")


def _default_lines() -> List[str]:
    return [*BEHAVIOR_RULES, *PORTFOLIO_STRATEGY, *USER_ACTIVITY]


def load_prompt_lines(path: Optional[str] = None) -> List[str]:
    """
    system prompt 문장 리스트를 반환.
    path가 있으면 JSON 파일에서 읽는다:
        - ["문장", ...]
        - {"rules": [...], "portfolio_strategy": [...], "user_activity": [...]}
    """
    if not path:
        return _default_lines()

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        lines: List[str] = []
        for section in PROMPT_SECTIONS:
            part = data.get(section) or []
            if not isinstance(part, list):
                raise ValueError(f"Prompt section {section!r} must be a list: {path}")
            lines.extend(part)
        data = lines

    if not isinstance(data, list) or not all(isinstance(x, str) for x in data):
        raise ValueError(f"System prompt file must hold a list of strings: {path}")

    return data


@lru_cache(maxsize=8)
def _joined_prompt(path: Optional[str]) -> str:
    # 파일은 경로당 한 번만 읽는다. 내용을 바꾸면 재시작 (또는 cache_clear)
    return " ".join(load_prompt_lines(path))


def system_prompt(path: Optional[str] = None) -> str:
    return _joined_prompt(path if path is not None else SYSTEM_PROMPT_FILE)


def clean_history(history: List[Any], cap: int = HISTORY_CONTENT_CAP) -> List[OutboundMessage]:
    """
    role이 user/assistant 이고 content가 문자열인 항목만 남긴다.
    content는 cap 문자까지 자름. 나머지는 조용히 버린다.
    """
    out: List[OutboundMessage] = []
    for m in history or []:
        try:
            item = HistoryMessage.model_validate(m)
        except ValidationError:
            continue
        out.append(OutboundMessage(role=item.role, content=item.content[:cap]))
    return out


def build_messages(
    message: str,
    history: List[Any],
    system: Optional[str] = None,
) -> List[Dict[str, str]]:
    """[system] + [정리된 history] + [현재 user 메시지]"""
    msgs = [OutboundMessage(role="system", content=system if system is not None else system_prompt())]
    msgs.extend(clean_history(history))
    msgs.append(OutboundMessage(role="user", content=message))
    return [m.model_dump() for m in msgs]
