# -----------------------------
# Menu text and option maps
# -----------------------------
from collections import OrderedDict

VERSION = "NutriPilot AI router v8"

MAIN_MENU = """NutriPilot AI

How can we help you today?

1) Formulation & Diet Control
2) Performance & Production Intelligence
3) Raw Materials, Feed Mill & Quality
4) Expert Review
5) Nutrition Partner Program

Type MENU anytime."""

CORE1_MENU = """Formulation & Diet Control

1) Build a new formula

Reply 1, or MENU."""

COMING_NEXT = "This core is coming next.\nType MENU."


def numbered(title: str, options, footer: str = "") -> str:
    lines = [f"{i}) {label}" for i, label in enumerate(options, start=1)]
    footer = footer or f"Reply 1–{len(options)}."
    return f"{title}\n\n" + "\n".join(lines) + f"\n\n{footer}"


def pick(options, choice):
    """Option for a 1-based digit choice, or None."""
    if not choice or not choice.isdigit():
        return None
    idx = int(choice) - 1
    if 0 <= idx < len(options):
        return options[idx]
    return None


ANIMALS = ["Poultry", "Swine", "Dairy Cattle", "Beef Cattle", "Small Ruminants", "Equine", "Other"]
ANIMAL_LABELS = ["Poultry", "Swine", "Dairy Cattle", "Beef Cattle",
                 "Small Ruminants (Sheep/Goats)", "Equine (Horses)", "Other / Custom"]
ANIMAL_MENU = numbered("Select animal category:", ANIMAL_LABELS)

POULTRY_TYPES = ["Broiler", "Layer", "Breeder"]
POULTRY_TYPE_MENU = numbered("Select poultry type:", ["Broiler", "Layer", "Breeder (Parent Stock)"])

GENETIC_LINES = ["Ross", "Cobb", "Hubbard", "Arbor Acres", "Hy-Line", "Lohmann", "Other / Custom"]
GENETIC_LINE_MENU = numbered("Select genetic line (required):", GENETIC_LINES)

POULTRY_STAGES = OrderedDict([
    ("Broiler", ("Select broiler stage:", ["Starter", "Grower", "Finisher", "Withdrawal"])),
    ("Layer", ("Select layer stage:", ["Chick", "Grower/Developer", "Pre-lay", "Peak lay", "Post-peak/Late lay"])),
    ("Breeder", ("Select breeder stage:", ["Rearing", "Pre-breeder", "Production"])),
])

NONPOULTRY_STAGES = OrderedDict([
    ("Swine", ("Select swine stage:", ["Nursery", "Grower", "Finisher", "Gilt / Gestation", "Lactation"])),
    ("Dairy Cattle", ("Select dairy stage:", ["Calf", "Heifer", "Dry cow", "Fresh cow", "Lactating cow"])),
    ("Beef Cattle", ("Select beef stage:", ["Backgrounding", "Growing", "Finishing", "Cow–calf"])),
    ("Equine", ("Select horse category:", ["Maintenance", "Performance", "Breeding", "Growth"])),
    ("Other", ("Select custom group:", ["Monogastric", "Ruminant", "Aquatic", "Other"])),
])

SMALLRUM_SPECIES = ["Sheep", "Goat"]
SMALLRUM_SPECIES_MENU = numbered("Select small ruminant:", SMALLRUM_SPECIES)
SMALLRUM_STAGES = ["Growing", "Breeding", "Lactation", "Finishing"]
SMALLRUM_STAGE_MENU = numbered("Select production stage:", SMALLRUM_STAGES)

FEED_FORMS = ["Mash", "Pellet", "Crumble", "TMR", "Other"]
FEED_FORM_MENU = numbered("Feed form:", ["Mash", "Pellet", "Crumble", "TMR (ruminants)", "Other"])

FORMULA_INPUT_MENU = numbered("Provide your formula:", [
    "Paste full formula (any format)",
    "Manual entry (guided / bulk)",
    "Upload file (CSV / TXT / PDF / Excel)",
    "Upload photo",
])

PASTE_PROMPT = """Paste your full formula now (any format accepted).

Example:
Maize27.45, SBM44% 25.34, Rice broken15, Fishmeal54%12.26, Salt0.099, Vitamin Premix 0.05"""

UPLOAD_PROMPT = """Send your formula file now as an attachment.

One ingredient per line works best, e.g.
Maize, 27.45
SBM44%, 25.34"""

PHOTO_PROMPT = """Send a clear photo of your formula now.

Make sure ingredient names and percentages are readable."""

MANUAL_HOME_MSG = """Manual Entry (% only)

Choose one:
A) Type ADD to enter items one-by-one
B) Paste multiple lines like:
Corn | 58
SBM44% | 25.34
Fishmeal54% | 12.26

Commands: ADD, LIST, REMOVE <name>, DONE, MENU"""

ADD_NAME_PROMPT = "Send ingredient name (example: Maize, SBM44%, Fishmeal54%)."

EST_MODE_MENU = numbered("How should nutrients be estimated?", [
    "Standard table values (quick)",
    "Table values + my lab results",
    "AgroCore engine",
])

LAB_ASK_MSG = """Send lab results, one ingredient per message or line:
SBM44% CP 46.5
Maize ME 3300 CP 7.9

Keys: ME, CP, LYS, MET, CA, AVP
Type DONE when finished, or SKIP to use table values."""

NO_REPORT = "No report yet. Type MENU."
GENERIC_ERROR = "Sorry, something went wrong on our side. Type MENU to start again."
