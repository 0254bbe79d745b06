"""
Per-sender conversation state machine.

Each inbound message is turned into a Reply by the handler registered for the
session's current State. Global keywords (MENU, HI, BACK, RESULT...) are
checked first and work from any state. Handlers mutate the session in place;
the router writes it back to the store after every message.
"""
import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from . import menus, nutrients
from .agrocore import AgroCoreClient, AgroCoreError, format_agrocore_report, formula_to_text
from .analyzer import analyze_formula, total_inclusion
from .config import Settings
from .media import MediaError, download_twilio_media, extract_text, is_spreadsheet
from .models import Ingredient, Session, State
from .parser import parse_formula_text, parse_lab_line, parse_manual_lines, safe_number
from .sessions import SessionStore, mask_sender

logger = logging.getLogger("nutripilot.router")

RESET_WORDS = {"hi", "hello", "start", "menu", "back"}
MAX_LISTED = 25


@dataclass(frozen=True)
class Inbound:
    sender: str
    body: str
    media_url: Optional[str] = None
    media_type: Optional[str] = None

    @property
    def raw(self) -> str:
        return (self.body or "").strip()

    @property
    def command(self) -> str:
        return normalize_command(self.body)

    @property
    def choice(self) -> Optional[str]:
        raw = self.raw
        return raw[0] if raw and raw[0] in "123456789" else None


@dataclass(frozen=True)
class Reply:
    text: str
    kind: str = "ok"  # ok | retry | error


def normalize_command(s: str) -> str:
    """Normalize curly quotes, dashes, collapse whitespace, lowercase, strip punct."""
    if not s:
        return ""
    normalized = (
        s.strip()
         .replace("’", "'")
         .replace("‘", "'")
         .replace("“", '"')
         .replace("”", '"')
         .replace("–", "-")
         .replace("—", "-")
    )
    return " ".join(normalized.split()).lower().strip(" .!?,;:'\"-")


def list_items(items: List[Ingredient]) -> str:
    if not items:
        return "No ingredients added yet."
    lines = [f"{i}. {x.name} = {x.inclusion:g}%" for i, x in enumerate(items[:MAX_LISTED], start=1)]
    extra = f"\n...and {len(items) - MAX_LISTED} more" if len(items) > MAX_LISTED else ""
    return "Current formula:\n" + "\n".join(lines) + extra + f"\nTotal: {total_inclusion(items):.2f}%"


def remove_item(items: List[Ingredient], name: str) -> Tuple[List[Ingredient], bool]:
    """Drop every item whose name matches case-insensitively."""
    key = (name or "").strip().lower()
    if not key:
        return items, False
    kept = [x for x in items if x.key() != key]
    return kept, len(kept) != len(items)


class Router:
    def __init__(self, store: SessionStore, settings: Optional[Settings] = None,
                 agrocore: Optional[AgroCoreClient] = None,
                 fetch_media: Optional[Callable[[str], Tuple[bytes, str]]] = None):
        self.store = store
        self.settings = settings or Settings()
        self.agrocore = agrocore
        self._fetch_media = fetch_media or self._download
        # one lock per sender, dropped once no message from that sender is in flight
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()
        self._handlers = {
            State.MAIN: self._main,
            State.CORE1_MENU: self._core1,
            State.ANIMAL: self._animal,
            State.POULTRY_TYPE: self._poultry_type,
            State.GENETIC_LINE: self._genetic_line,
            State.POULTRY_STAGE: self._poultry_stage,
            State.SMALLRUM_SPECIES: self._smallrum_species,
            State.SMALLRUM_STAGE: self._smallrum_stage,
            State.NONPOULTRY_STAGE: self._nonpoultry_stage,
            State.FEED_FORM: self._feed_form,
            State.FORMULA_INPUT_METHOD: self._input_method,
            State.PASTE_FORMULA: self._paste,
            State.UPLOAD_FORMULA: self._upload,
            State.MANUAL_HOME: self._manual_home,
            State.MANUAL_ADD_NAME: self._manual_add_name,
            State.MANUAL_ADD_INCLUSION: self._manual_add_inclusion,
            State.EST_MODE: self._est_mode,
            State.LAB_ASK: self._lab_ask,
        }

    # -----------------------------
    # Entry point
    # -----------------------------
    def handle(self, sender: str, body: str, media_url: Optional[str] = None,
               media_type: Optional[str] = None) -> Reply:
        """Always returns a Reply; internal failures become an apology message."""
        msg = Inbound(sender=sender or "unknown", body=body or "", media_url=media_url, media_type=media_type)
        with self._lock_for(msg.sender):
            try:
                session = self.store.load(msg.sender)
                before = session.state
                reply = self.dispatch(session, msg)
                self.store.put(msg.sender, session)
            except Exception:
                logger.exception("Unhandled error for %s", mask_sender(msg.sender))
                return Reply(menus.GENERIC_ERROR, "error")

        logger.info("msg from %s: %s -> %s (%s)", mask_sender(msg.sender),
                    before.value, session.state.value, reply.kind)
        return reply

    def _lock_for(self, sender: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(sender)
            if lock is None:
                lock = threading.Lock()
                self._locks[sender] = lock
            return lock

    def dispatch(self, session: Session, msg: Inbound) -> Reply:
        cmd = msg.command
        if (not msg.raw and not msg.media_url) or cmd in RESET_WORDS:
            session.reset()
            return Reply(menus.MAIN_MENU)
        if cmd == "result":
            return Reply(session.last_report or menus.NO_REPORT)

        handler = self._handlers.get(session.state)
        if handler is None:
            session.reset()
            return Reply("Type MENU to restart.", "retry")
        return handler(session, msg)

    # -----------------------------
    # Menus
    # -----------------------------
    def _main(self, session: Session, msg: Inbound) -> Reply:
        if msg.choice == "1":
            session.state = State.CORE1_MENU
            return Reply(menus.CORE1_MENU)
        if msg.choice in ("2", "3", "4", "5"):
            return Reply(menus.COMING_NEXT)
        return Reply(menus.MAIN_MENU, "retry")

    def _core1(self, session: Session, msg: Inbound) -> Reply:
        if msg.choice == "1":
            session.reset()
            session.state = State.ANIMAL
            return Reply(menus.ANIMAL_MENU)
        return Reply(menus.CORE1_MENU, "retry")

    def _animal(self, session: Session, msg: Inbound) -> Reply:
        animal = menus.pick(menus.ANIMALS, msg.choice)
        if animal is None:
            return Reply(menus.ANIMAL_MENU, "retry")

        session.context.animal = animal
        if animal == "Poultry":
            session.state = State.POULTRY_TYPE
            return Reply(menus.POULTRY_TYPE_MENU)
        if animal == "Small Ruminants":
            session.state = State.SMALLRUM_SPECIES
            return Reply(menus.SMALLRUM_SPECIES_MENU)

        session.state = State.NONPOULTRY_STAGE
        return Reply(self._stage_menu(session))

    def _poultry_type(self, session: Session, msg: Inbound) -> Reply:
        ptype = menus.pick(menus.POULTRY_TYPES, msg.choice)
        if ptype is None:
            return Reply(menus.POULTRY_TYPE_MENU, "retry")
        session.context.poultry_type = ptype
        session.state = State.GENETIC_LINE
        return Reply(menus.GENETIC_LINE_MENU)

    def _genetic_line(self, session: Session, msg: Inbound) -> Reply:
        line = menus.pick(menus.GENETIC_LINES, msg.choice)
        if line is None:
            return Reply(menus.GENETIC_LINE_MENU, "retry")
        session.context.genetic_line = line
        session.state = State.POULTRY_STAGE
        return Reply(self._stage_menu(session))

    def _stage_options(self, session: Session) -> Tuple[str, List[str]]:
        ctx = session.context
        if ctx.animal == "Poultry":
            return menus.POULTRY_STAGES.get(ctx.poultry_type) or menus.POULTRY_STAGES["Breeder"]
        return menus.NONPOULTRY_STAGES.get(ctx.animal) or menus.NONPOULTRY_STAGES["Other"]

    def _stage_menu(self, session: Session) -> str:
        title, options = self._stage_options(session)
        return menus.numbered(title, options)

    def _poultry_stage(self, session: Session, msg: Inbound) -> Reply:
        return self._pick_stage(session, msg)

    def _nonpoultry_stage(self, session: Session, msg: Inbound) -> Reply:
        return self._pick_stage(session, msg)

    def _pick_stage(self, session: Session, msg: Inbound) -> Reply:
        _, options = self._stage_options(session)
        stage = menus.pick(options, msg.choice)
        if stage is None:
            return Reply("Invalid selection. Reply again.\n\n" + self._stage_menu(session), "retry")
        session.context.stage = stage
        session.state = State.FEED_FORM
        return Reply(menus.FEED_FORM_MENU)

    def _smallrum_species(self, session: Session, msg: Inbound) -> Reply:
        species = menus.pick(menus.SMALLRUM_SPECIES, msg.choice)
        if species is None:
            return Reply(menus.SMALLRUM_SPECIES_MENU, "retry")
        session.context.species = species
        session.state = State.SMALLRUM_STAGE
        return Reply(menus.SMALLRUM_STAGE_MENU)

    def _smallrum_stage(self, session: Session, msg: Inbound) -> Reply:
        stage = menus.pick(menus.SMALLRUM_STAGES, msg.choice)
        if stage is None:
            return Reply(menus.SMALLRUM_STAGE_MENU, "retry")
        session.context.stage = f"{session.context.species} - {stage}"
        session.state = State.FEED_FORM
        return Reply(menus.FEED_FORM_MENU)

    def _feed_form(self, session: Session, msg: Inbound) -> Reply:
        form = menus.pick(menus.FEED_FORMS, msg.choice)
        if form is None:
            return Reply(menus.FEED_FORM_MENU, "retry")
        session.context.feed_form = form
        session.state = State.FORMULA_INPUT_METHOD
        return Reply(menus.FORMULA_INPUT_MENU)

    def _input_method(self, session: Session, msg: Inbound) -> Reply:
        if msg.choice == "1":
            session.state = State.PASTE_FORMULA
            return Reply(menus.PASTE_PROMPT)
        if msg.choice == "2":
            session.formula = []
            session.state = State.MANUAL_HOME
            return Reply(menus.MANUAL_HOME_MSG)
        if msg.choice == "3":
            session.state = State.UPLOAD_FORMULA
            return Reply(menus.UPLOAD_PROMPT)
        if msg.choice == "4":
            session.state = State.UPLOAD_FORMULA
            return Reply(menus.PHOTO_PROMPT)
        return Reply(menus.FORMULA_INPUT_MENU, "retry")

    # -----------------------------
    # Formula intake
    # -----------------------------
    def _paste(self, session: Session, msg: Inbound) -> Reply:
        result = parse_formula_text(msg.raw, limit=self.settings.max_ingredients)
        if len(result.items) < 2:
            return Reply("I couldn't extract enough ingredients (need at least 2). Paste again.", "retry")
        session.formula = result.items
        return self._captured(session, result.failed, result.truncated)

    def _upload(self, session: Session, msg: Inbound) -> Reply:
        if not msg.media_url:
            return Reply("Please attach your formula file or photo, or type MENU.", "retry")

        try:
            content, content_type = self._fetch_media(msg.media_url)
            content_type = content_type or msg.media_type or ""
            if is_spreadsheet(content_type):
                text = self._ingest_spreadsheet(content, content_type)
            else:
                text = extract_text(content, content_type)
        except (MediaError, AgroCoreError) as e:
            logger.warning("Upload from %s failed: %s", mask_sender(msg.sender), e)
            return Reply(f"Failed: {e}\n\nSend another file, or type MENU.", "retry")

        limit = self.settings.max_ingredients
        result = parse_manual_lines(text, limit=limit)
        if len(result.items) < 2:
            result = parse_formula_text(text, limit=limit)
        if len(result.items) < 2:
            return Reply("I couldn't find at least 2 ingredients in that file. Send another, or type MENU.", "retry")

        session.formula = result.items
        return self._captured(session, result.failed, result.truncated)

    def _ingest_spreadsheet(self, content: bytes, content_type: str) -> str:
        if self.agrocore is None:
            raise MediaError("Excel files are not supported here. Save the sheet as CSV and send it again.")
        ext = "xlsx" if "openxml" in content_type else "xls"
        result = self.agrocore.ingest(f"formula.{ext}", content, content_type)
        text = result.get("formula_text")
        if not text and isinstance(result.get("ingredients"), list):
            text = "\n".join(
                f"{row.get('name')} | {row.get('inclusion', row.get('pct'))}"
                for row in result["ingredients"] if isinstance(row, dict)
            )
        if not text:
            raise AgroCoreError("No formula found in the spreadsheet.")
        return text

    def _download(self, url: str) -> Tuple[bytes, str]:
        return download_twilio_media(url, self.settings.twilio_account_sid, self.settings.twilio_auth_token)

    def _captured(self, session: Session, failed: int = 0, truncated: bool = False) -> Reply:
        session.lab_values = {}
        session.state = State.EST_MODE
        text = f"✅ Captured {len(session.formula)} ingredients (total {total_inclusion(session.formula):.2f}%)."
        if failed:
            text += f"\nSkipped {failed} item(s) I couldn't read."
        if truncated:
            text += f"\nOnly the first {self.settings.max_ingredients} ingredients were kept."
        return Reply(f"{text}\n\n{menus.EST_MODE_MENU}")

    def _manual_home(self, session: Session, msg: Inbound) -> Reply:
        cmd = msg.command
        if cmd == "add":
            session.state = State.MANUAL_ADD_NAME
            return Reply(menus.ADD_NAME_PROMPT)

        if cmd == "list":
            return Reply(list_items(session.formula))

        if cmd == "remove" or cmd.startswith("remove "):
            name = msg.raw[len("remove"):].strip().rstrip(".!?")
            session.formula, removed = remove_item(session.formula, name)
            if removed:
                return Reply(f"✅ Removed: {name}\n\n{list_items(session.formula)}")
            return Reply(f"{name or 'Ingredient'} not found.\n\n{list_items(session.formula)}", "retry")

        if cmd == "done":
            if len(session.formula) < 2:
                return Reply("Please add at least 2 ingredients first.\nType ADD or paste bulk lines.", "retry")
            return self._captured(session)

        room = self.settings.max_ingredients - len(session.formula)
        bulk = parse_manual_lines(msg.raw, limit=max(room, 0))
        if bulk.items:
            session.formula.extend(bulk.items)
            text = f"✅ Added {len(bulk.items)} items."
            if bulk.failed:
                text += f" Skipped {bulk.failed} line(s)."
            if bulk.truncated:
                text += f" Limit of {self.settings.max_ingredients} ingredients reached."
            return Reply(f"{text}\n\n{list_items(session.formula)}\n\nType DONE to analyze or ADD to continue.")
        if bulk.truncated:
            return Reply(f"Limit of {self.settings.max_ingredients} ingredients reached. Type DONE.", "retry")

        return Reply(menus.MANUAL_HOME_MSG, "retry")

    def _manual_add_name(self, session: Session, msg: Inbound) -> Reply:
        name = " ".join(msg.raw.split())
        if not name:
            return Reply(menus.ADD_NAME_PROMPT, "retry")
        session.pending_name = name
        session.state = State.MANUAL_ADD_INCLUSION
        return Reply(f'Inclusion % for "{name}"? (example: 27.45)')

    def _manual_add_inclusion(self, session: Session, msg: Inbound) -> Reply:
        value = safe_number(msg.raw)
        if value is None or value < 0 or value > 100:
            return Reply("Please send a number between 0 and 100 (example: 27.45 or 0.05)", "retry")

        session.state = State.MANUAL_HOME
        name, session.pending_name = session.pending_name, None
        if len(session.formula) >= self.settings.max_ingredients:
            return Reply(f"Limit of {self.settings.max_ingredients} ingredients reached. Type DONE.", "retry")
        session.formula.append(Ingredient(name=name or "Custom ingredient", inclusion=value))
        return Reply(f"✅ Added.\n\n{list_items(session.formula)}\n\nType ADD or DONE.")

    # -----------------------------
    # Estimation and report
    # -----------------------------
    def _est_mode(self, session: Session, msg: Inbound) -> Reply:
        if msg.choice == "1":
            return self._finish(session)
        if msg.choice == "2":
            session.state = State.LAB_ASK
            return Reply(menus.LAB_ASK_MSG)
        if msg.choice == "3":
            if self.agrocore is None:
                return Reply("AgroCore engine is not configured. Reply 1 or 2.", "retry")
            try:
                result = self.agrocore.analyze(formula_to_text(session.formula))
            except AgroCoreError as e:
                logger.warning("AgroCore analyze failed for %s: %s", mask_sender(msg.sender), e)
                return Reply(f"Failed: {e}\n\nReply 1 for table values, or 3 to try again.", "retry")
            return self._finish(session, format_agrocore_report(result, session.context))
        return Reply(menus.EST_MODE_MENU, "retry")

    def _lab_ask(self, session: Session, msg: Inbound) -> Reply:
        cmd = msg.command
        if cmd == "skip":
            session.lab_values = {}
            return self._finish(session)
        if cmd == "done":
            return self._finish(session)

        saved, missing = [], []
        for line in msg.raw.split("\n"):
            parsed = parse_lab_line(line)
            if parsed is None:
                continue
            name, values = parsed
            item = self._find_ingredient(session.formula, name)
            if item is None:
                missing.append(name)
                continue
            session.lab_values.setdefault(item.key(), {}).update(values)
            shown = " ".join(f"{k.upper()} {v:g}" for k, v in values.items())
            saved.append(f"{item.name}: {shown}")

        if not saved and not missing:
            return Reply("Format: <ingredient> CP 46.5 ME 2400\n\nType DONE when finished, or SKIP.", "retry")

        text = ""
        if saved:
            text += "✅ Lab values saved:\n- " + "\n- ".join(saved) + "\n\n"
        if missing:
            text += "Not in your formula: " + ", ".join(missing) + "\n\n"
        text += "Send more, or type DONE."
        return Reply(text, "ok" if saved else "retry")

    @staticmethod
    def _find_ingredient(items: List[Ingredient], name: str) -> Optional[Ingredient]:
        key = name.strip().lower()
        for item in items:
            if item.key() == key:
                return item
        # 'SBM' for 'SBM44%': accept when it points at exactly one item
        canonical = nutrients.match_ingredient(name)
        if canonical:
            hits = [i for i in items if nutrients.match_ingredient(i.name) == canonical]
            if len(hits) == 1:
                return hits[0]
        return None

    def _finish(self, session: Session, text: Optional[str] = None) -> Reply:
        if text is None:
            report = analyze_formula(session.context, session.formula, session.lab_values, footer=menus.VERSION)
            text = report.text
        session.last_report = text
        session.reset()
        return Reply(text)
