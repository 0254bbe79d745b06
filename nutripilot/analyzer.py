import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from . import nutrients
from .models import Context, Ingredient
from .parser import extract_cp_tag

logger = logging.getLogger("nutripilot.analyzer")

TOTAL_LOW = 95.0
TOTAL_HIGH = 105.0
MAX_LISTED = 18

SALT_MARKERS = ("salt", "nacl")
LIME_MARKERS = ("lime", "limestone", "caco3", "calcium carbonate", "shell grit", "oyster shell")


@dataclass(frozen=True)
class Report:
    total: float
    flags: Tuple[str, ...]
    profile: Dict[str, float]
    coverage: float
    unmatched: Tuple[str, ...]
    text: str


def total_inclusion(items: List[Ingredient]) -> float:
    return sum(float(i.inclusion or 0) for i in items)


def _has_premix(name: str) -> bool:
    return "premix" in name or ("vit" in name and "pre" in name) or ("min" in name and "pre" in name)


def _is_layer(ctx: Context) -> bool:
    return ctx.animal == "Poultry" and ctx.poultry_type == "Layer"


def check_flags(ctx: Context, items: List[Ingredient]) -> List[str]:
    """Presence checks that need no nutrient table."""
    total = total_inclusion(items)
    lower = [i.name.lower() for i in items]

    flags = []
    if total < TOTAL_LOW or total > TOTAL_HIGH:
        flags.append(f"Total inclusion: {total:.2f}% (expected ~100%)")
    if not any(_has_premix(n) for n in lower):
        flags.append("Premix not detected (vit/min premix may be missing)")
    if not any(m in n for n in lower for m in SALT_MARKERS):
        flags.append("Salt not detected (Na/Cl source may be missing)")
    if _is_layer(ctx) and not any(m in n for n in lower for m in LIME_MARKERS):
        flags.append("No limestone/Ca source detected (critical for layers)")

    seen = set()
    for item in items:
        key = item.key()
        if key in seen:
            flags.append(f"Duplicate ingredient: {item.name}")
        seen.add(key)
    return flags


def estimate_profile(
    items: List[Ingredient],
    lab_values: Optional[Dict[str, Dict[str, float]]] = None,
) -> Tuple[Dict[str, float], float, List[str]]:
    """
    Inclusion-weighted nutrient profile of the whole diet.

    Lab values (keyed by lower-cased ingredient name) win over a CP tag in the
    name, which wins over the table. Returns (profile, covered %, unmatched names).
    """
    lab_values = lab_values or {}
    profile = {n: 0.0 for n in nutrients.NUTRIENTS}
    covered = 0.0
    unmatched = []

    for item in items:
        values = None
        canonical = nutrients.match_ingredient(item.name)
        if canonical:
            values = nutrients.ingredient_values(canonical)
            tag = extract_cp_tag(item.name)
            if tag is not None and nutrients.accepts_cp_tag(canonical):
                values["cp"] = tag

        lab = lab_values.get(item.key())
        if lab:
            values = dict(values or {n: 0.0 for n in nutrients.NUTRIENTS})
            values.update(lab)

        if values is None:
            unmatched.append(item.name)
            continue

        share = float(item.inclusion) / 100.0
        covered += float(item.inclusion)
        for n in nutrients.NUTRIENTS:
            profile[n] += share * float(values.get(n, 0.0))

    return profile, covered, unmatched


def compare_targets(profile: Dict[str, float], targets: Dict[str, Tuple[float, float]]) -> List[str]:
    flags = []
    for n in nutrients.NUTRIENTS:
        if n not in targets:
            continue
        low, high = targets[n]
        value = profile.get(n, 0.0)
        label = nutrients.NUTRIENT_LABELS[n]
        if value < low:
            flags.append(f"{label} {_fmt(n, value)} below target {_fmt(n, low)}-{_fmt(n, high)}")
        elif value > high:
            flags.append(f"{label} {_fmt(n, value)} above target {_fmt(n, low)}-{_fmt(n, high)}")
    return flags


def _fmt(nutrient: str, value: float) -> str:
    if nutrient == "me":
        return f"{value:.0f}"
    return f"{value:.2f}"


def _context_lines(ctx: Context) -> str:
    out = f"Animal: {ctx.animal or '-'}\n"
    if ctx.poultry_type:
        out += f"Poultry type: {ctx.poultry_type}\n"
    if ctx.genetic_line:
        out += f"Genetic line: {ctx.genetic_line}\n"
    if ctx.stage:
        out += f"Stage: {ctx.stage}\n"
    if ctx.feed_form:
        out += f"Feed form: {ctx.feed_form}\n"
    return out


def analyze_formula(
    ctx: Context,
    items: List[Ingredient],
    lab_values: Optional[Dict[str, Dict[str, float]]] = None,
    footer: str = "",
) -> Report:
    total = total_inclusion(items)
    flags = check_flags(ctx, items)

    profile, covered, unmatched = estimate_profile(items, lab_values)
    targets = nutrients.targets_for(ctx.animal, ctx.poultry_type, ctx.stage)
    flags.extend(compare_targets(profile, targets))

    shown = [n for n in nutrients.NUTRIENTS if n != "me" or ctx.animal == "Poultry"]
    profile_lines = []
    for n in shown:
        line = f"- {nutrients.NUTRIENT_LABELS[n]}: {_fmt(n, profile[n])}"
        if n in targets:
            low, high = targets[n]
            line += f" (target {_fmt(n, low)}-{_fmt(n, high)})"
        profile_lines.append(line)

    listed = "\n".join(f"- {i.name}: {i.inclusion:g}%" for i in items[:MAX_LISTED])
    if len(items) > MAX_LISTED:
        listed += f"\n...and {len(items) - MAX_LISTED} more"

    text = (
        "✅ Formula captured\n\n"
        + _context_lines(ctx)
        + f"Items: {len(items)}\n"
        + f"Total: {total:.2f}%\n\n"
        + f"Ingredients:\n{listed}\n\n"
        + f"Estimated nutrients (table covers {covered:.1f}% of the diet):\n"
        + "\n".join(profile_lines)
        + "\n\n"
    )
    if lab_values:
        text += f"Lab values applied: {len(lab_values)} ingredient(s)\n\n"
    if unmatched:
        text += "Not in nutrient table: " + ", ".join(unmatched[:10]) + "\n\n"
    if not targets:
        text += "No nutrient targets on file for this stage.\n\n"
    if flags:
        text += "⚠️ Flags:\n- " + "\n- ".join(flags) + "\n\n"
    else:
        text += "✅ No major flags detected.\n\n"
    text += "Note: Ingredient names accepted as entered.\nType MENU to start again."
    if footer:
        text += f"\n\n{footer}"

    logger.debug("Analyzed %d items, total=%.2f, flags=%d", len(items), total, len(flags))
    return Report(
        total=round(total, 4),
        flags=tuple(flags),
        profile={n: round(v, 4) for n, v in profile.items()},
        coverage=round(covered, 4),
        unmatched=tuple(unmatched),
        text=text,
    )
