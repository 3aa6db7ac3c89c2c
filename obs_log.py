import json
import os
import time
import uuid
from dataclasses import dataclass
from typing import Optional

LOG_JSON = os.getenv("LOG_JSON", "1") == "1"

def now_ms() -> int:
    return int(time.time() * 1000)

@dataclass
class Timer:
    t0: float

    @classmethod
    def start(cls):
        return cls(time.perf_counter())

    def ms(self) -> int:
        return int((time.perf_counter() - self.t0) * 1000)

def ensure_request_id(rid: Optional[str]) -> str:
    # 프론트/프록시가 X-Request-ID를 주면 그대로 사용
    return rid or str(uuid.uuid4())

def log(event: str, **fields):
    payload = {"ts_ms": now_ms(), "event": event, **fields}
    if LOG_JSON:
        print(json.dumps(payload, ensure_ascii=False), flush=True)
    else:
        print(payload, flush=True)
