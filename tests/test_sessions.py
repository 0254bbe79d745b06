import json
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from nutripilot.config import Settings
from nutripilot.models import Context, Ingredient, Session, State
from nutripilot.sessions import (
    MemorySessionStore,
    RedisSessionStore,
    build_session_store,
    e164,
    mask_sender,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _session():
    return Session(
        state=State.MANUAL_HOME,
        context=Context(animal="Poultry", poultry_type="Layer", stage="Peak lay"),
        formula=[Ingredient(name="Maize", inclusion=60.0), Ingredient(name="SBM44%", inclusion=30.0)],
        lab_values={"sbm44%": {"cp": 46.5}},
        last_report="old report",
    )


def test_e164_normalizes_whatsapp_sender():
    assert e164("whatsapp:+61 400 000 001") == "+61400000001"
    assert e164("61400000001") == "+61400000001"
    assert e164("") == ""


def test_mask_sender_keeps_last_digits():
    assert mask_sender("+61400000001") == "***0001"
    assert mask_sender("") == "unknown"


def test_session_dict_round_trip():
    original = _session()
    restored = Session.from_dict(json.loads(json.dumps(original.to_dict())))
    assert restored == original


def test_unknown_state_falls_back_to_main():
    assert Session.from_dict({"state": "NOPE"}).state == State.MAIN


def test_reset_keeps_last_report():
    s = _session()
    s.reset()
    assert s.state == State.MAIN
    assert s.formula == []
    assert s.context == Context()
    assert s.last_report == "old report"


def test_memory_store_creates_lazily():
    store = MemorySessionStore()
    assert store.get("a") is None
    session = store.load("a")
    assert session.state == State.MAIN
    assert store.get("a") is not None


def test_memory_store_returns_copies():
    store = MemorySessionStore()
    store.put("a", _session())
    first = store.get("a")
    first.formula.clear()
    assert len(store.get("a").formula) == 2


def test_memory_store_expires_entries():
    clock = FakeClock()
    store = MemorySessionStore(ttl_seconds=60, clock=clock)
    store.put("a", _session())
    clock.now += 59
    assert store.get("a") is not None
    clock.now += 1
    assert store.get("a") is None


def test_memory_store_purges_expired_senders_on_put():
    clock = FakeClock()
    store = MemorySessionStore(ttl_seconds=60, clock=clock)
    for i in range(100):
        store.put(f"+6140000{i:04d}", _session())
    assert len(store) == 100

    clock.now += 3600
    store.put("+61499999999", _session())
    assert len(store) == 1
    assert store.get("+61499999999") is not None


def test_memory_store_delete():
    store = MemorySessionStore()
    store.put("a", _session())
    store.delete("a")
    store.delete("missing")
    assert store.get("a") is None


def test_redis_store_writes_json_with_ttl():
    client = MagicMock()
    store = RedisSessionStore(client, ttl_seconds=300)
    store.put("whatsapp:+61400000001", _session())

    key, payload = client.set.call_args[0]
    assert key == "nutripilot:session:+61400000001"
    assert client.set.call_args[1] == {"ex": 300}
    assert json.loads(payload)["state"] == "MANUAL_HOME"


def test_redis_store_reads_str_and_bytes():
    payload = json.dumps(_session().to_dict())
    client = MagicMock()
    store = RedisSessionStore(client)

    client.get.return_value = payload
    assert store.get("+61400000001").formula[1].name == "SBM44%"

    client.get.return_value = payload.encode("utf-8")
    assert store.get("+61400000001").context.poultry_type == "Layer"


def test_redis_store_drops_corrupt_entries():
    client = MagicMock()
    client.get.return_value = "{not json"
    store = RedisSessionStore(client)
    assert store.get("+61400000001") is None
    assert store.load("+61400000001").state == State.MAIN
    assert client.set.called


@pytest.mark.parametrize("payload", [
    {"state": "MAIN", "context": "oops"},
    ["MAIN"],
    {"formula": [{"name": "Maize"}]},
    {"lab_values": {"sbm": {"cp": "high"}}},
])
def test_redis_store_drops_wrongly_shaped_entries(payload):
    client = MagicMock()
    client.get.return_value = json.dumps(payload)
    store = RedisSessionStore(client)
    assert store.get("+61400000001") is None
    assert store.load("+61400000001").state == State.MAIN


def test_from_dict_rejects_wrong_shape():
    with pytest.raises(ValidationError):
        Session.from_dict({"context": "oops"})


def test_redis_store_delete():
    client = MagicMock()
    RedisSessionStore(client).delete("+61400000001")
    client.delete.assert_called_once_with("nutripilot:session:+61400000001")


def test_build_store_defaults_to_memory():
    assert isinstance(build_session_store(Settings()), MemorySessionStore)


def test_build_store_uses_upstash_when_configured(monkeypatch):
    created = {}

    class FakeRedis:
        def __init__(self, url, token):
            created.update(url=url, token=token)

    monkeypatch.setattr("nutripilot.sessions.Redis", FakeRedis)
    store = build_session_store(Settings(upstash_url="https://x.upstash.io", upstash_token="tok"))
    assert isinstance(store, RedisSessionStore)
    assert created == {"url": "https://x.upstash.io", "token": "tok"}
