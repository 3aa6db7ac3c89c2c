import json
import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import relay_server

pytestmark = pytest.mark.integration

def _enabled():
    return os.getenv("ENABLE_INTEGRATION_TESTS", "0") == "1" and bool(os.getenv("OPENAI_API_KEY"))

@pytest.mark.skipif(not _enabled(), reason="Integration tests disabled or OPENAI_API_KEY missing")
def test_agent_stream_smoke():
    client = TestClient(relay_server.app)
    payload = {"message": "Summarise the aggregate totals in one sentence.", "max_tokens": 60}

    with client.stream("POST", "/api/agent", json=payload, headers={"X-Forwarded-For": "it-smoke"}) as r:
        assert r.status_code == 200

        deltas = []
        saw_done = False
        for line in r.iter_lines():
            if not line.startswith("data: "):
                continue
            data = line[len("data: "):]
            if data == "[DONE]":
                saw_done = True
                break
            evt = json.loads(data)
            assert "error" not in evt, evt
            deltas.append(evt["delta"])

    assert saw_done, "[DONE] 이벤트를 받지 못했습니다."
    assert "".join(deltas).strip()
