import pytest

from nutripilot.parser import (
    DEFAULT_NAME,
    extract_cp_tag,
    normalize_typos,
    parse_formula_text,
    parse_lab_line,
    parse_manual_lines,
    parse_token,
    safe_number,
    split_bulk,
)


@pytest.mark.parametrize("token, name, value", [
    ("Maize27.45,", "Maize", 27.45),
    ("SBM44% 25.34", "SBM44%", 25.34),
    ("Fishmeal54%12.26", "Fishmeal54%", 12.26),
    ("Rice broken15", "Rice broken", 15.0),
    ("Sunflower meal26-28%5", "Sunflower meal26-28%", 5.0),
    ("Maize: 27.45%", "Maize", 27.45),
    ("Limestone - 8", "Limestone", 8.0),
    ("Premix .5", "Premix", 0.5),
    ("Salt0.099", "Salt", 0.099),
])
def test_parse_token_takes_trailing_number(token, name, value):
    item = parse_token(token)
    assert item is not None
    assert item.name == name
    assert item.inclusion == pytest.approx(value)


def test_typo_o_becomes_zero():
    item = parse_token("DLM99%o.122")
    assert item.name == "DLM99%"
    assert item.inclusion == pytest.approx(0.122)


def test_typo_fix_leaves_words_alone():
    assert normalize_typos("Mo.5") == "Mo.5"
    assert normalize_typos("DLM99% O.2") == "DLM99% 0.2"


@pytest.mark.parametrize("token", ["Maize", "", "   ", "Maize 250", "25", "Maize -5", "Maize: -5%", "-5"])
def test_parse_token_rejects(token):
    assert parse_token(token) is None


def test_parse_token_placeholder_name():
    item = parse_token("25.34", default_name=DEFAULT_NAME)
    assert item.name == DEFAULT_NAME
    assert item.inclusion == 25.34


def test_split_bulk_on_commas_semicolons_newlines():
    tokens = split_bulk("Maize27.45, SBM44% 25.34;Salt0.099\n\nPremix 0.05")
    assert tokens == ["Maize27.45", "SBM44% 25.34", "Salt0.099", "Premix 0.05"]


def test_bulk_paste_example():
    result = parse_formula_text("Maize27.45, SBM44% 25.34, Salt0.099")
    assert [i.inclusion for i in result.items] == [27.45, 25.34, 0.099]
    assert [i.name for i in result.items] == ["Maize", "SBM44%", "Salt"]
    assert result.failed == 0


def test_bulk_paste_counts_failures():
    result = parse_formula_text("Maize27.45, hello there, SBM 20")
    assert len(result.items) == 2
    assert result.failed == 1


def test_bulk_paste_skips_negative_inclusion():
    result = parse_formula_text("Maize 60, SBM -5, Limestone - 8")
    assert [(i.name, i.inclusion) for i in result.items] == [("Maize", 60.0), ("Limestone", 8.0)]
    assert result.failed == 1


def test_bulk_paste_caps_items():
    text = ", ".join(f"Item{i} 0.5" for i in range(130))
    result = parse_formula_text(text, limit=120)
    assert len(result.items) == 120
    assert result.truncated


def test_manual_lines_pipe_and_comma():
    result = parse_manual_lines("Corn | 58\nSBM44% , 25.34\nFishmeal54% | 12.26")
    assert [(i.name, i.inclusion) for i in result.items] == [
        ("Corn", 58.0), ("SBM44%", 25.34), ("Fishmeal54%", 12.26),
    ]


def test_manual_lines_accept_pasted_line():
    result = parse_manual_lines("Maize27.45, SBM44% 25.34")
    assert [i.name for i in result.items] == ["Maize", "SBM44%"]


def test_manual_lines_skip_csv_header():
    result = parse_manual_lines("Ingredient,Inclusion\nMaize,60\nSBM,30")
    assert [i.name for i in result.items] == ["Maize", "SBM"]
    assert result.failed == 2


@pytest.mark.parametrize("text, expected", [
    ("27.45", 27.45),
    ("27.45%", 27.45),
    ("o.5", 0.5),
    (" 12 ", 12.0),
    ("abc", None),
    ("1.2.3", None),
    (None, None),
])
def test_safe_number(text, expected):
    assert safe_number(text) == expected


def test_cp_tag():
    assert extract_cp_tag("SBM44%") == 44.0
    assert extract_cp_tag("Sunflower meal26-28%") == 27.0
    assert extract_cp_tag("Maize") is None


def test_lab_line():
    assert parse_lab_line("SBM44% CP 46.5 ME 2400") == ("SBM44%", {"cp": 46.5, "me": 2400.0})
    assert parse_lab_line("Fishmeal54% cp: 62") == ("Fishmeal54%", {"cp": 62.0})
    assert parse_lab_line("CP 46") is None
    assert parse_lab_line("hello") is None
