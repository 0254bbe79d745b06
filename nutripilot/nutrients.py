# -----------------------------
# Static reference data
# -----------------------------
# Ingredient values are as-fed averages from common feed tables. ME is poultry
# AMEn (kcal/kg); everything else is % of the ingredient.
import re
from typing import Dict, Optional, Tuple

NUTRIENTS = ("me", "cp", "lys", "met", "ca", "avp")

NUTRIENT_LABELS = {
    "me": "ME (kcal/kg)",
    "cp": "CP %",
    "lys": "Lys %",
    "met": "Met %",
    "ca": "Ca %",
    "avp": "avP %",
}

# name: (aliases, values, cp tag applies)
INGREDIENTS: Dict[str, Tuple[Tuple[str, ...], Dict[str, float], bool]] = {
    "Maize": (("maize", "corn", "yellow corn"),
              {"me": 3350, "cp": 8.5, "lys": 0.24, "met": 0.18, "ca": 0.02, "avp": 0.08}, False),
    "Wheat": (("wheat",),
              {"me": 3100, "cp": 12.0, "lys": 0.35, "met": 0.20, "ca": 0.05, "avp": 0.15}, False),
    "Sorghum": (("sorghum", "milo"),
                {"me": 3200, "cp": 9.5, "lys": 0.22, "met": 0.16, "ca": 0.03, "avp": 0.10}, False),
    "Barley": (("barley",),
               {"me": 2700, "cp": 11.0, "lys": 0.40, "met": 0.18, "ca": 0.06, "avp": 0.12}, False),
    "Rice broken": (("rice broken", "broken rice", "rice"),
                    {"me": 3300, "cp": 8.0, "lys": 0.30, "met": 0.20, "ca": 0.03, "avp": 0.08}, False),
    "Rice bran": (("rice bran", "rice polish", "de oiled rice bran"),
                  {"me": 2500, "cp": 12.5, "lys": 0.55, "met": 0.25, "ca": 0.07, "avp": 0.20}, False),
    "Wheat bran": (("wheat bran", "bran", "wheat middlings", "pollard"),
                   {"me": 1300, "cp": 15.5, "lys": 0.60, "met": 0.22, "ca": 0.12, "avp": 0.30}, False),
    "Soybean meal": (("soybean meal", "soyabean meal", "soya meal", "soy meal", "sbm", "soya", "soybean"),
                     {"me": 2230, "cp": 44.0, "lys": 2.70, "met": 0.62, "ca": 0.30, "avp": 0.22}, True),
    "Full fat soya": (("full fat soya", "full fat soybean", "ffsb", "ffs"),
                      {"me": 3300, "cp": 36.0, "lys": 2.20, "met": 0.50, "ca": 0.25, "avp": 0.20}, True),
    "Fishmeal": (("fishmeal", "fish meal", "fish"),
                 {"me": 2850, "cp": 60.0, "lys": 4.50, "met": 1.60, "ca": 5.00, "avp": 2.80}, True),
    "Meat and bone meal": (("meat and bone meal", "meat bone meal", "mbm"),
                           {"me": 2450, "cp": 50.0, "lys": 2.60, "met": 0.70, "ca": 10.0, "avp": 5.00}, True),
    "DDGS": (("ddgs", "distillers grains"),
             {"me": 2800, "cp": 27.0, "lys": 0.75, "met": 0.55, "ca": 0.05, "avp": 0.40}, True),
    "Sunflower meal": (("sunflower meal", "sunflower cake", "sunflower", "sfm"),
                       {"me": 1800, "cp": 28.0, "lys": 1.00, "met": 0.65, "ca": 0.35, "avp": 0.25}, True),
    "Rapeseed meal": (("rapeseed meal", "canola meal", "rapeseed", "canola"),
                      {"me": 2000, "cp": 36.0, "lys": 2.00, "met": 0.70, "ca": 0.65, "avp": 0.30}, True),
    "Groundnut cake": (("groundnut cake", "groundnut meal", "peanut meal", "gnc"),
                       {"me": 2600, "cp": 42.0, "lys": 1.50, "met": 0.45, "ca": 0.20, "avp": 0.20}, True),
    "Corn gluten meal": (("corn gluten meal", "maize gluten", "corn gluten", "cgm"),
                         {"me": 3700, "cp": 60.0, "lys": 1.00, "met": 1.40, "ca": 0.05, "avp": 0.15}, True),
    "Vegetable oil": (("soybean oil", "soya oil", "vegetable oil", "palm oil", "veg oil", "oil", "fat"),
                      {"me": 8800, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
    "Limestone": (("limestone", "lime", "caco3", "calcium carbonate", "shell grit", "oyster shell", "shell"),
                  {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 38.0, "avp": 0.0}, False),
    "DCP": (("dicalcium phosphate", "dcp"),
            {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 22.0, "avp": 18.0}, False),
    "MCP": (("monocalcium phosphate", "mcp"),
            {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 16.0, "avp": 21.0}, False),
    "Salt": (("salt", "nacl", "sodium chloride"),
             {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
    "Sodium bicarbonate": (("sodium bicarbonate", "soda bicarb", "nahco3"),
                           {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
    "DL-Methionine": (("dl methionine", "methionine", "dl met", "dlm", "met"),
                      {"me": 5000, "cp": 58.0, "lys": 0.0, "met": 99.0, "ca": 0.0, "avp": 0.0}, False),
    "L-Lysine HCl": (("l lysine hcl", "lysine hcl", "l lysine", "lysine", "lys"),
                     {"me": 4000, "cp": 95.0, "lys": 78.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
    "L-Threonine": (("l threonine", "threonine", "thr"),
                    {"me": 3500, "cp": 72.0, "lys": 0.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
    "Premix": (("vitamin premix", "mineral premix", "premix", "vit min", "vitamins", "minerals"),
               {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
    "Additive": (("choline chloride", "choline", "toxin binder", "binder", "enzyme", "phytase",
                  "coccidiostat", "anticoccidial", "acidifier"),
                 {"me": 0, "cp": 0.0, "lys": 0.0, "met": 0.0, "ca": 0.0, "avp": 0.0}, False),
}


def _norm(text: str) -> str:
    return " ".join(re.sub(r"[^a-z]+", " ", (text or "").lower()).split())


# longest alias first so 'rice bran' wins over 'rice'
_ALIASES = sorted(
    ((_norm(alias), name) for name, (aliases, _, _) in INGREDIENTS.items() for alias in aliases),
    key=lambda pair: len(pair[0]),
    reverse=True,
)
_ALIAS_RES = [(re.compile(rf"(?<![a-z]){re.escape(alias)}(?![a-z])"), name) for alias, name in _ALIASES]


def match_ingredient(name: str) -> Optional[str]:
    """Canonical table name for a user-typed ingredient, or None."""
    normalized = _norm(name)
    if not normalized:
        return None
    for pattern, canonical in _ALIAS_RES:
        if pattern.search(normalized):
            return canonical
    return None


def ingredient_values(canonical: str) -> Dict[str, float]:
    return dict(INGREDIENTS[canonical][1])


def accepts_cp_tag(canonical: str) -> bool:
    return INGREDIENTS[canonical][2]


# -----------------------------
# Targets per animal / type / stage
# -----------------------------
Range = Tuple[float, float]

_BROILER = {
    "Starter": {"me": (2950, 3050), "cp": (21.5, 23.0), "lys": (1.28, 1.44), "met": (0.50, 0.60), "ca": (0.90, 1.00), "avp": (0.45, 0.50)},
    "Grower": {"me": (3050, 3150), "cp": (19.5, 21.5), "lys": (1.10, 1.25), "met": (0.45, 0.55), "ca": (0.80, 0.90), "avp": (0.40, 0.45)},
    "Finisher": {"me": (3100, 3200), "cp": (18.0, 20.0), "lys": (1.00, 1.10), "met": (0.42, 0.50), "ca": (0.75, 0.85), "avp": (0.38, 0.42)},
    "Withdrawal": {"me": (3150, 3250), "cp": (17.0, 19.0), "lys": (0.95, 1.05), "met": (0.40, 0.48), "ca": (0.70, 0.80), "avp": (0.35, 0.40)},
}

_LAYER = {
    "Chick": {"me": (2850, 2950), "cp": (19.0, 20.5), "lys": (1.00, 1.10), "met": (0.45, 0.50), "ca": (0.95, 1.05), "avp": (0.45, 0.50)},
    "Grower/Developer": {"me": (2750, 2850), "cp": (15.5, 17.0), "lys": (0.75, 0.85), "met": (0.35, 0.40), "ca": (0.90, 1.00), "avp": (0.40, 0.45)},
    "Pre-lay": {"me": (2750, 2850), "cp": (16.5, 17.5), "lys": (0.75, 0.85), "met": (0.36, 0.42), "ca": (2.00, 2.50), "avp": (0.42, 0.46)},
    "Peak lay": {"me": (2750, 2850), "cp": (16.5, 18.0), "lys": (0.80, 0.90), "met": (0.40, 0.45), "ca": (3.80, 4.20), "avp": (0.40, 0.45)},
    "Post-peak/Late lay": {"me": (2700, 2800), "cp": (15.0, 16.5), "lys": (0.70, 0.80), "met": (0.35, 0.40), "ca": (4.00, 4.40), "avp": (0.35, 0.40)},
}

_BREEDER = {
    "Rearing": {"me": (2700, 2800), "cp": (15.0, 17.0), "lys": (0.70, 0.80), "met": (0.32, 0.38), "ca": (0.90, 1.00), "avp": (0.40, 0.45)},
    "Pre-breeder": {"me": (2750, 2850), "cp": (15.0, 16.0), "lys": (0.65, 0.75), "met": (0.32, 0.38), "ca": (1.20, 1.50), "avp": (0.38, 0.42)},
    "Production": {"me": (2750, 2850), "cp": (15.0, 16.0), "lys": (0.70, 0.80), "met": (0.35, 0.40), "ca": (3.00, 3.40), "avp": (0.35, 0.40)},
}

# swine energy is not on the poultry ME scale, so only protein and minerals
_SWINE = {
    "Nursery": {"cp": (20.0, 22.0), "lys": (1.35, 1.50), "ca": (0.75, 0.85), "avp": (0.40, 0.45)},
    "Grower": {"cp": (17.0, 18.5), "lys": (1.00, 1.15), "ca": (0.65, 0.75), "avp": (0.30, 0.35)},
    "Finisher": {"cp": (14.0, 16.0), "lys": (0.80, 0.95), "ca": (0.55, 0.65), "avp": (0.25, 0.30)},
    "Gilt / Gestation": {"cp": (12.0, 14.0), "lys": (0.55, 0.65), "ca": (0.75, 0.85), "avp": (0.35, 0.40)},
    "Lactation": {"cp": (17.0, 19.0), "lys": (0.95, 1.10), "ca": (0.80, 0.90), "avp": (0.40, 0.45)},
}

TARGETS = {
    ("Poultry", "Broiler"): _BROILER,
    ("Poultry", "Layer"): _LAYER,
    ("Poultry", "Breeder"): _BREEDER,
    ("Swine", None): _SWINE,
}


def targets_for(animal: Optional[str], poultry_type: Optional[str], stage: Optional[str]) -> Dict[str, Range]:
    table = TARGETS.get((animal, poultry_type if animal == "Poultry" else None))
    if not table or not stage:
        return {}
    return dict(table.get(stage, {}))
