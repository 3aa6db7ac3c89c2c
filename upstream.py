from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import httpx

from schemas import CompletionRequest

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
DEFAULT_MODEL = "gpt-4o"

# 기본은 타임아웃 없음. 필요하면 env로 지정
_timeout_env = os.getenv("UPSTREAM_TIMEOUT_SEC")
UPSTREAM_TIMEOUT_SEC: Optional[float] = float(_timeout_env) if _timeout_env else None


def api_key() -> Optional[str]:
    # 요청마다 읽는다 (배포 중 키 교체 반영)
    key = os.getenv("OPENAI_API_KEY")
    return key.strip() if key and key.strip() else None


def model_name() -> str:
    return os.getenv("OPENAI_MODEL") or DEFAULT_MODEL


def completions_url(base_url: str = OPENAI_BASE_URL) -> str:
    return f"{base_url}/chat/completions"


def make_client() -> httpx.AsyncClient:
    """업스트림 호출용 클라이언트. 테스트에서 MockTransport 클라이언트로 교체한다."""
    return httpx.AsyncClient(timeout=httpx.Timeout(UPSTREAM_TIMEOUT_SEC))


def build_completion_body(
    *,
    model: str,
    messages: List[Dict[str, str]],
    temperature: float,
    max_tokens: int,
) -> Dict[str, Any]:
    req = CompletionRequest(
        model=model,
        stream=True,
        temperature=temperature,
        max_tokens=max_tokens,
        messages=messages,
    )
    return req.model_dump()


def completion_stream(client: httpx.AsyncClient, *, key: str, body: Dict[str, Any], url: Optional[str] = None):
    """
    스트리밍 completion 요청. async context manager(httpx.Response)를 반환.

        async with completion_stream(client, key=..., body=...) as resp:
            async for chunk in resp.aiter_bytes():
                ...
    """
    return client.stream(
        "POST",
        url or completions_url(),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {key}",
        },
        json=body,
    )


async def read_error_text(resp: httpx.Response) -> str:
    raw = await resp.aread()
    return raw.decode("utf-8", errors="replace")
