from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterable, Awaitable, Callable, List, Optional

from sse_events import DONE, delta_frame, sse_done

DATA_PREFIX = "data:"

# 토큰 안의 개행은 브라우저 렌더링용 마커로 치환
LINE_BREAK_MARKER = "<br/>"


class LineReassembler:
    """
    바이트 청크 -> 완성된 줄 단위로 재조립.
    청크 경계에서 잘린 줄(멀티바이트 문자 포함)은 다음 feed까지 remainder로 들고 있는다.
    """
    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._remainder = ""

    @property
    def remainder(self) -> str:
        return self._remainder

    def feed(self, chunk: bytes) -> List[str]:
        text = self._decoder.decode(chunk)
        cut = text.rfind("\n")
        if cut < 0:
            self._remainder += text
            return []

        lines = (self._remainder + text[:cut]).split("\n")
        self._remainder = text[cut + 1:]
        return lines

    def flush(self) -> List[str]:
        # 업스트림 종료 시 남은 꼬리 (개행 없이 끝난 마지막 줄)
        tail = self._remainder + self._decoder.decode(b"", final=True)
        self._remainder = ""
        return [tail] if tail else []


def data_payload(line: str) -> Optional[str]:
    """'data:' 줄이면 payload, 아니면 None"""
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].lstrip()


def extract_token(payload: str) -> Optional[str]:
    """
    choices[0].delta.content 추출.
    파싱 실패/구조 불일치/빈 토큰은 None (조용히 버림)
    """
    try:
        obj: Any = json.loads(payload)
        token = obj["choices"][0]["delta"].get("content")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
        return None

    if not isinstance(token, str) or not token:
        return None
    return token


@dataclass
class RelayStats:
    deltas: int = 0
    done_seen: bool = False
    cancelled: bool = False


async def relay_events(
    chunks: AsyncIterable[bytes],
    stats: Optional[RelayStats] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncGenerator[str, None]:
    """
    업스트림 SSE 바이트 스트림 -> 다운스트림 SSE 프레임.
        data: {"delta": "..."}\n\n
        ...
        data: [DONE]\n\n

    업스트림 [DONE]을 만나면 남은 데이터는 읽지 않고 바로 종료.
    is_disconnected가 True를 주면 아무것도 쓰지 않고 중단.
    """
    if stats is None:
        stats = RelayStats()

    reader = LineReassembler()

    def translate(lines: List[str]):
        for line in lines:
            payload = data_payload(line)
            if payload is None:
                continue
            if payload == DONE:
                stats.done_seen = True
                return
            token = extract_token(payload)
            if token is None:
                continue
            stats.deltas += 1
            yield delta_frame(token.replace("\n", LINE_BREAK_MARKER))

    async for chunk in chunks:
        # 클라이언트가 연결 끊었으면 즉시 중단
        if is_disconnected is not None and await is_disconnected():
            stats.cancelled = True
            return

        for frame in translate(reader.feed(chunk)):
            yield frame

        if stats.done_seen:
            yield sse_done()
            return

    for frame in translate(reader.flush()):
        yield frame

    yield sse_done()
