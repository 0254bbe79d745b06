import io
import logging
import os

import requests
from PyPDF2 import PdfReader

logger = logging.getLogger("nutripilot.media")

# ----- Optional OCR libs -----
# Photo uploads need pytesseract + Pillow and the tesseract binary; we check
# availability at runtime and tell the user when it is missing.
try:
    import pytesseract
    from PIL import Image
    _HAS_TESS = True
except ImportError:
    _HAS_TESS = False

MAX_MEDIA_BYTES = 10 * 1024 * 1024  # 10 MB cap

TEXT_TYPES = ("text/", "application/csv", "application/json")
SPREADSHEET_TYPES = (
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.oasis.opendocument.spreadsheet",
)


class MediaError(Exception):
    pass


def is_spreadsheet(content_type: str) -> bool:
    ct = (content_type or "").lower()
    return any(ct.startswith(t) for t in SPREADSHEET_TYPES)


def download_twilio_media(media_url: str, sid: str, token: str, timeout=15):
    """
    Downloads a Twilio-hosted media URL using HTTP Basic Auth.
    Returns (content_bytes, content_type).
    """
    if not sid or not token:
        raise MediaError("Missing TWILIO_ACCOUNT_SID or TWILIO_AUTH_TOKEN.")

    try:
        with requests.get(media_url, auth=(sid, token), stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            content_type = resp.headers.get("Content-Type", "")

            chunks = []
            total = 0
            for chunk in resp.iter_content(chunk_size=8192):
                if chunk:
                    chunks.append(chunk)
                    total += len(chunk)
                    if total > MAX_MEDIA_BYTES:
                        raise MediaError(f"File exceeds {MAX_MEDIA_BYTES // (1024 * 1024)} MB limit.")
    except requests.RequestException as e:
        raise MediaError(f"Download failed: {type(e).__name__}") from e

    return b"".join(chunks), content_type


def extract_text(content: bytes, content_type: str) -> str:
    """
    Text from an uploaded formula file:
      1) plain text / CSV decoded as UTF-8
      2) PDF text via PyPDF2
      3) Tesseract OCR for images (if available)
    Raises MediaError when the type is unsupported or nothing was read.
    """
    ct = (content_type or "").lower()

    if any(ct.startswith(t) for t in TEXT_TYPES):
        return content.decode("utf-8-sig", errors="ignore").strip()

    if "pdf" in ct:
        try:
            reader = PdfReader(io.BytesIO(content))
            texts = [page.extract_text() or "" for page in reader.pages]
        except Exception as e:
            raise MediaError(f"Could not read PDF ({type(e).__name__})") from e
        merged = "\n".join(t for t in texts if t).strip()
        if not merged:
            raise MediaError("No text found in PDF (scanned PDFs are not supported).")
        return merged

    if ct.startswith("image/"):
        if not _HAS_TESS:
            raise MediaError("Photo reading is not available on this server.")
        if os.environ.get("TESSERACT_CMD"):
            pytesseract.pytesseract.tesseract_cmd = os.environ["TESSERACT_CMD"]
        try:
            txt = pytesseract.image_to_string(Image.open(io.BytesIO(content)))
        except Exception as e:
            raise MediaError(f"OCR failed ({type(e).__name__})") from e
        if not txt.strip():
            raise MediaError("No text found in photo.")
        return txt

    raise MediaError(f"Unsupported file type: {content_type or 'unknown'}")
