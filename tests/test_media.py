from unittest.mock import MagicMock

import pytest
import requests

from nutripilot import media
from nutripilot.media import MediaError, download_twilio_media, extract_text, is_spreadsheet


def test_csv_is_decoded():
    assert extract_text("\ufeffMaize,60\nSBM,40\n".encode("utf-8"), "text/csv") == "Maize,60\nSBM,40"


def test_plain_text_with_charset():
    assert extract_text(b"Maize 60", "text/plain; charset=utf-8") == "Maize 60"


def test_unsupported_type():
    with pytest.raises(MediaError, match="Unsupported file type: audio/ogg"):
        extract_text(b"...", "audio/ogg")


def test_broken_pdf():
    with pytest.raises(MediaError):
        extract_text(b"not a pdf", "application/pdf")


def test_image_without_ocr(monkeypatch):
    monkeypatch.setattr(media, "_HAS_TESS", False)
    with pytest.raises(MediaError, match="Photo reading is not available"):
        extract_text(b"\x89PNG", "image/png")


@pytest.mark.parametrize("ct, expected", [
    ("application/vnd.ms-excel", True),
    ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", True),
    ("text/csv", False),
    (None, False),
])
def test_is_spreadsheet(ct, expected):
    assert is_spreadsheet(ct) is expected


def _fake_get(monkeypatch, resp):
    get = MagicMock()
    get.return_value.__enter__.return_value = resp
    monkeypatch.setattr(media.requests, "get", get)
    return get


def test_download_requires_credentials():
    with pytest.raises(MediaError, match="TWILIO_ACCOUNT_SID"):
        download_twilio_media("https://x/1", "", "")


def test_download_uses_basic_auth(monkeypatch):
    resp = MagicMock()
    resp.headers = {"Content-Type": "text/csv"}
    resp.iter_content.return_value = [b"Maize,60\n", b"SBM,40"]
    get = _fake_get(monkeypatch, resp)

    content, ct = download_twilio_media("https://x/1", "AC123", "secret")
    assert content == b"Maize,60\nSBM,40"
    assert ct == "text/csv"
    assert get.call_args[1]["auth"] == ("AC123", "secret")


def test_download_size_cap(monkeypatch):
    resp = MagicMock()
    resp.headers = {}
    resp.iter_content.return_value = [b"x" * media.MAX_MEDIA_BYTES, b"x"]
    _fake_get(monkeypatch, resp)

    with pytest.raises(MediaError, match="MB limit"):
        download_twilio_media("https://x/1", "AC123", "secret")


def test_download_http_error(monkeypatch):
    resp = MagicMock()
    resp.raise_for_status.side_effect = requests.HTTPError("404")
    _fake_get(monkeypatch, resp)

    with pytest.raises(MediaError, match="Download failed: HTTPError"):
        download_twilio_media("https://x/1", "AC123", "secret")
