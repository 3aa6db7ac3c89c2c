import os
import threading
import time
from typing import Callable, Dict, List, Optional

from starlette.requests import Request

# 고정 윈도우 (초). 환경 변수 RATE_WINDOW_SEC, 기본 10초
RATE_WINDOW_SEC = float(os.getenv("RATE_WINDOW_SEC", "10"))

# 윈도우 안에서 허용하는 최대 요청 수. 기본 5회
RATE_MAX = int(os.getenv("RATE_MAX", "5"))

UNKNOWN_CLIENT = "unknown"


def client_identity(request: Request) -> str:
    """
    rate limit 버킷 키. 인증이 아니므로 위조 가능.
    우선순위: X-Forwarded-For 첫 번째 값 -> 접속 peer host -> "unknown"
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


class RateLimiter:
    """
    프로세스 로컬 rate limiter.
    identity -> 요청 timestamp 리스트를 들고, 매 체크마다 윈도우 밖 항목을 버린다.
    재시작하면 초기화된다 (분산 환경 공유 X).

    빈 버킷은 윈도우 주기마다 hit() 안에서 한 번씩 정리된다.
    """
    def __init__(
        self,
        max_requests: int = RATE_MAX,
        window_sec: float = RATE_WINDOW_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_sec = window_sec
        self.clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep: Optional[float] = None

    def _live(self, stamps: List[float], now: float) -> List[float]:
        return [t for t in stamps if now - t < self.window_sec]

    def _sweep_locked(self, now: float) -> int:
        stale = []
        for key, stamps in self._hits.items():
            live = self._live(stamps, now)
            if live:
                self._hits[key] = live
            else:
                stale.append(key)

        for key in stale:
            del self._hits[key]

        self._last_sweep = now
        return len(stale)

    def hit(self, key: str) -> bool:
        """
        허용되면 timestamp를 기록하고 True.
        한도에 걸리면 기록하지 않고 False.
        """
        with self._lock:
            now = self.clock()

            if self._last_sweep is None:
                self._last_sweep = now
            elif now - self._last_sweep >= self.window_sec:
                self._sweep_locked(now)

            stamps = self._live(self._hits.get(key, []), now)

            if len(stamps) >= self.max_requests:
                self._hits[key] = stamps
                return False

            stamps.append(now)
            self._hits[key] = stamps
            return True

    def retry_after(self, key: str) -> Optional[float]:
        # 가장 오래된 기록이 윈도우를 벗어나기까지 남은 시간
        with self._lock:
            stamps = self._hits.get(key)
            if not stamps:
                return None
            return max(0.0, self.window_sec - (self.clock() - stamps[0]))

    def sweep(self) -> int:
        """만료된 키 정리. 지운 키 개수 반환."""
        with self._lock:
            return self._sweep_locked(self.clock())

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_sweep = None


# 전역에서 공유하는 limiter 인스턴스
RATE_LIMITER = RateLimiter()
