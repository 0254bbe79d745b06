"""
Free-text formula parsing.

Users paste formulas the way they keep them in their notes, e.g.

    Maize27.45, SBM44% 25.34, Rice broken15, Fishmeal54%12.26, DLM99%o.122

Parsing runs in three passes: typo fixes over the whole text, splitting into
tokens, then pulling a trailing inclusion value off each token. Numbers that
appear earlier in a token (the 44 in SBM44%) stay part of the name.
"""
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .models import Ingredient

DEFAULT_NAME = "Custom ingredient"
MAX_INCLUSION = 100.0

# 'o.122' typed for '0.122'; a letter before the o means it belongs to a word
_TYPO_O_RE = re.compile(r"(?<![A-Za-z])[oO](?=\.\d)")
_SPLIT_RE = re.compile(r"[,;\n]+")
_TRAILING_RE = re.compile(r"^(?P<name>.*?)(?P<value>\d+(?:\.\d+)?|\.\d+)\s*%?$", re.DOTALL)
_NAME_TAIL_RE = re.compile(r"[\s:=|\-]+$")
_LOOSE_PCT_RE = re.compile(r"(?<!\d)%+$")
_CP_TAG_RE = re.compile(r"(\d+(?:\.\d+)?)(?:\s*-\s*(\d+(?:\.\d+)?))?\s*%")
_PAIR_RE = re.compile(r"^(?P<name>[^|,;]+?)\s*[|,;]\s*(?P<value>\d*\.?\d+)\s*%?$")
_LAB_KEY_RE = re.compile(r"\b(AVP|LYS|MET|ME|CP|CA)\b\s*[:=]?\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
# a minus glued to the value, as in "Maize -5"
_NEGATIVE_RE = re.compile(r"(?:^|\s)-$")


@dataclass
class ParseResult:
    items: List[Ingredient] = field(default_factory=list)
    failed: int = 0
    truncated: bool = False


def normalize_typos(text: str) -> str:
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _TYPO_O_RE.sub("0", text)


def split_bulk(text: str) -> List[str]:
    """Split a pasted blob on commas, semicolons and newlines."""
    if not text:
        return []
    return [chunk.strip() for chunk in _SPLIT_RE.split(text) if chunk.strip()]


def _clean_name(name: str) -> str:
    name = " ".join(name.split())
    while True:
        trimmed = _LOOSE_PCT_RE.sub("", _NAME_TAIL_RE.sub("", name))
        if trimmed == name:
            return name
        name = trimmed


def parse_token(token: str, default_name: Optional[str] = None) -> Optional[Ingredient]:
    """
    Turn one token like 'SBM44% 25.34' into Ingredient('SBM44%', 25.34).
    The last number in the token is the inclusion; returns None when there is
    no trailing number, the value is negative or over 100, or the name is empty and no
    default_name is given.
    """
    token = normalize_typos(token or "").strip().rstrip(",;:. \t")
    if not token:
        return None

    m = _TRAILING_RE.match(token)
    if not m:
        return None
    if _NEGATIVE_RE.search(m.group("name")):
        return None

    value = float(m.group("value"))
    if not math.isfinite(value) or value > MAX_INCLUSION:
        return None

    name = _clean_name(m.group("name"))
    if not name:
        if default_name is None:
            return None
        name = default_name
    return Ingredient(name=name, inclusion=value)


def parse_formula_text(text: str, limit: int = 120) -> ParseResult:
    """Bulk paste: every token that carries a trailing number becomes an ingredient."""
    result = ParseResult()
    for token in split_bulk(normalize_typos(text)):
        item = parse_token(token, default_name=DEFAULT_NAME)
        if item is None:
            result.failed += 1
            continue
        if len(result.items) >= limit:
            result.truncated = True
            break
        result.items.append(item)
    return result


def parse_manual_lines(text: str, limit: int = 120) -> ParseResult:
    """
    Manual-entry bulk format, one ingredient per line:
        Corn | 58
        SBM44% , 25.34
    Lines without a separator are read like a pasted token.
    """
    result = ParseResult()
    for line in normalize_typos(text).split("\n"):
        line = line.strip()
        if not line:
            continue

        m = _PAIR_RE.match(line)
        if m:
            candidates = [_pair_item(m.group("name"), m.group("value"))]
        else:
            candidates = [parse_token(token) for token in split_bulk(line)]

        for item in candidates:
            if item is None:
                result.failed += 1
                continue
            if len(result.items) >= limit:
                result.truncated = True
                return result
            result.items.append(item)
    return result


def _pair_item(name: str, value: str) -> Optional[Ingredient]:
    number = safe_number(value)
    name = _clean_name(name)
    if not name or number is None or not 0 <= number <= MAX_INCLUSION:
        return None
    return Ingredient(name=name, inclusion=number)


def safe_number(text) -> Optional[float]:
    """Lenient number read for prompts like 'Inclusion %?' ('27.45%', 'o.5')."""
    cleaned = re.sub(r"[^0-9.\-]", "", normalize_typos(str(text if text is not None else "")))
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def extract_cp_tag(name: str) -> Optional[float]:
    """Crude protein tag inside a name: 'SBM44%' -> 44.0, 'Sunflower meal26-28%' -> 27.0."""
    m = _CP_TAG_RE.search(name or "")
    if not m:
        return None
    low = float(m.group(1))
    if m.group(2):
        return round((low + float(m.group(2))) / 2.0, 2)
    return low


def parse_lab_line(line: str):
    """
    'SBM44% CP 46.5 ME 2400' -> ('SBM44%', {'cp': 46.5, 'me': 2400.0}).
    Returns None when the line has no name or no recognised key/value pair.
    """
    line = normalize_typos(line or "").strip()
    first = _LAB_KEY_RE.search(line)
    if not first:
        return None
    name = _clean_name(line[: first.start()])
    if not name:
        return None
    values = {key.lower(): float(value) for key, value in _LAB_KEY_RE.findall(line[first.start():])}
    return name, values
