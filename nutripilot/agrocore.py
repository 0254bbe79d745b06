"""
Client for the AgroCore analysis service.

    GET  /v1/health
    POST /v1/analyze   {"locale": "en", "formula_text": "..."}
    POST /v1/ingest    multipart upload, answers with the extracted formula

429 and 5xx answers (and timeouts) are retried with exponential backoff;
anything else, or running out of retries, raises AgroCoreError.
"""
import logging
import time

import requests

logger = logging.getLogger("nutripilot.agrocore")

RETRY_STATUSES = {429, 500, 502, 503, 504}


class AgroCoreError(Exception):
    pass


class AgroCoreClient:
    def __init__(self, base_url: str, timeout: float = 20.0, retries: int = 2,
                 backoff: float = 0.5, session=None, sleep=time.sleep):
        if not base_url:
            raise ValueError("AgroCore base URL is required.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(0, int(retries))
        self.backoff = backoff
        self._http = session or requests.Session()
        self._sleep = sleep

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        last_err = None

        for attempt in range(self.retries + 1):
            if attempt:
                # 0.5s, 1s, 2s ...
                self._sleep(self.backoff * (2 ** (attempt - 1)))
            try:
                resp = self._http.request(method, url, timeout=self.timeout, **kwargs)
            except (requests.Timeout, requests.ConnectionError) as e:
                last_err = f"{type(e).__name__}: {e}"
                logger.warning("AgroCore %s %s attempt %d failed: %s", method, path, attempt + 1, last_err)
                continue

            if resp.status_code in RETRY_STATUSES:
                last_err = f"HTTP {resp.status_code}"
                logger.warning("AgroCore %s %s attempt %d got %s", method, path, attempt + 1, last_err)
                continue
            if resp.status_code >= 400:
                raise AgroCoreError(f"HTTP {resp.status_code}: {resp.text[:200]}")
            try:
                return resp.json()
            except ValueError:
                raise AgroCoreError("Invalid JSON from AgroCore")

        raise AgroCoreError(last_err or "AgroCore unavailable")

    def health(self) -> dict:
        return self._request("GET", "/v1/health")

    def analyze(self, formula_text: str, locale: str = "en") -> dict:
        return self._request("POST", "/v1/analyze", json={"locale": locale, "formula_text": formula_text})

    def ingest(self, filename: str, content: bytes, content_type: str) -> dict:
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        return self._request("POST", "/v1/ingest", files=files)


def formula_to_text(items) -> str:
    return ", ".join(f"{i.name} {i.inclusion:g}" for i in items)


def format_agrocore_report(result: dict, ctx=None) -> str:
    """Chat text for an /v1/analyze answer."""
    result = result or {}
    profile = result.get("nutrient_profile_canonical") or {}
    evaluation = result.get("evaluation") or {}
    findings = evaluation.get("findings") or []
    overall = result.get("overall") or evaluation.get("overall") or "UNKNOWN"

    out = "✅ AgroCore analysis\n\n"
    if ctx is not None:
        out += f"Animal: {ctx.animal or '-'}\n"
        if ctx.stage:
            out += f"Stage: {ctx.stage}\n"
        out += "\n"

    me = profile.get("me")
    cp = profile.get("cp")
    out += f"ME: {me if me is not None else '-'} kcal/kg\n"
    out += f"CP: {cp if cp is not None else '-'}%\n\n"
    out += f"Overall: {overall}\n"

    if findings:
        out += "\nFindings:\n"
        for f in findings[:15]:
            if isinstance(f, dict):
                sev = f.get("severity") or f.get("level") or ""
                msg = f.get("message") or f.get("text") or f.get("code") or ""
                out += f"- {sev + ': ' if sev else ''}{msg}\n"
            else:
                out += f"- {f}\n"
    out += "\nType MENU to start again."
    return out
