from __future__ import annotations

import json
import os
from typing import Union

from pydantic import BaseModel, ConfigDict, TypeAdapter

# 스트림 종료 마커 (업스트림/다운스트림 공통 문자열)
DONE = "[DONE]"

VALIDATE_SSE = os.getenv("VALIDATE_SSE", "0") == "1"

# 브라우저로 내려가는 이벤트는 두 종류뿐
class DeltaEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")
    delta: str

class ErrorEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")
    error: str

# Union 타입: 서버/테스트에서 검증할 때 사용
SSEEvent = Union[DeltaEvent, ErrorEvent]

SSE_ADAPTER = TypeAdapter(SSEEvent)


def sse(data: dict) -> str:
    """
    SSE 포멧:
        data: {...}\n\n
    """
    if VALIDATE_SSE:
        # 스키마 검증: 실패하면 예외 발생
        SSE_ADAPTER.validate_python(data)
    return f"data: {json.dumps(data, ensure_ascii=False, separators=(',', ':'))}\n\n"


def sse_done() -> str:
    return f"data: {DONE}\n\n"


def delta_frame(token: str) -> str:
    return sse({"delta": token})


def error_frame(message: str) -> str:
    return sse({"error": message})
