import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rate_limit import RATE_LIMITER


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    # 전역 limiter는 테스트마다 초기화
    RATE_LIMITER.reset()
    yield
    RATE_LIMITER.reset()
