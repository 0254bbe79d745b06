from unittest.mock import MagicMock

import pytest
import requests

from nutripilot.agrocore import AgroCoreClient, AgroCoreError, format_agrocore_report, formula_to_text
from nutripilot.models import Context, Ingredient


def _resp(status, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = "error body"
    resp.json.return_value = payload if payload is not None else {}
    return resp


def _client(*responses, retries=2):
    http = MagicMock()
    http.request.side_effect = list(responses)
    sleep = MagicMock()
    return AgroCoreClient("https://agrocore.test/", retries=retries, session=http, sleep=sleep), http, sleep


def test_analyze_posts_formula_text():
    client, http, sleep = _client(_resp(200, {"overall": "OK"}))
    assert client.analyze("Maize 60, SBM 40") == {"overall": "OK"}

    method, url = http.request.call_args[0]
    assert (method, url) == ("POST", "https://agrocore.test/v1/analyze")
    assert http.request.call_args[1]["json"] == {"locale": "en", "formula_text": "Maize 60, SBM 40"}
    assert http.request.call_args[1]["timeout"] == 20.0
    sleep.assert_not_called()


def test_retries_server_errors_with_backoff():
    client, http, sleep = _client(_resp(503), _resp(200, {"status": "ok"}))
    assert client.health() == {"status": "ok"}
    assert http.request.call_count == 2
    sleep.assert_called_once_with(0.5)


def test_retries_timeouts():
    client, http, sleep = _client(requests.Timeout("slow"), _resp(429), _resp(200, {"ok": True}))
    assert client.health() == {"ok": True}
    assert [c[0][0] for c in sleep.call_args_list] == [0.5, 1.0]


def test_gives_up_after_retries():
    client, http, _ = _client(_resp(503), _resp(503), _resp(503))
    with pytest.raises(AgroCoreError, match="HTTP 503"):
        client.health()
    assert http.request.call_count == 3


def test_client_errors_are_not_retried():
    client, http, sleep = _client(_resp(400))
    with pytest.raises(AgroCoreError, match="HTTP 400"):
        client.analyze("x 1")
    assert http.request.call_count == 1
    sleep.assert_not_called()


def test_invalid_json():
    bad = _resp(200)
    bad.json.side_effect = ValueError("no json")
    client, _, _ = _client(bad)
    with pytest.raises(AgroCoreError, match="Invalid JSON"):
        client.health()


def test_ingest_uploads_file():
    client, http, _ = _client(_resp(200, {"formula_text": "Maize | 60"}))
    client.ingest("formula.xlsx", b"PK", "")
    assert http.request.call_args[1]["files"] == {"file": ("formula.xlsx", b"PK", "application/octet-stream")}


def test_requires_base_url():
    with pytest.raises(ValueError):
        AgroCoreClient("")


def test_formula_to_text():
    assert formula_to_text([Ingredient(name="Maize", inclusion=60.0), Ingredient(name="SBM44%", inclusion=25.34)]) == "Maize 60, SBM44% 25.34"


def test_format_report():
    text = format_agrocore_report({
        "nutrient_profile_canonical": {"me": 3010, "cp": 22.1},
        "evaluation": {"overall": "PASS", "findings": [{"level": "INFO", "text": "Balanced"}, "plain note"]},
    }, Context(animal="Poultry", stage="Starter"))

    assert "Animal: Poultry" in text
    assert "ME: 3010 kcal/kg" in text
    assert "CP: 22.1%" in text
    assert "Overall: PASS" in text
    assert "- INFO: Balanced" in text
    assert "- plain note" in text


def test_format_report_handles_empty_answer():
    text = format_agrocore_report({})
    assert "ME: - kcal/kg" in text
    assert "Overall: UNKNOWN" in text
