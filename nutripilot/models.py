from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class State(str, Enum):
    MAIN = "MAIN"
    CORE1_MENU = "CORE1_MENU"
    ANIMAL = "ANIMAL"
    POULTRY_TYPE = "POULTRY_TYPE"
    GENETIC_LINE = "GENETIC_LINE"
    POULTRY_STAGE = "POULTRY_STAGE"
    SMALLRUM_SPECIES = "SMALLRUM_SPECIES"
    SMALLRUM_STAGE = "SMALLRUM_STAGE"
    NONPOULTRY_STAGE = "NONPOULTRY_STAGE"
    FEED_FORM = "FEED_FORM"
    FORMULA_INPUT_METHOD = "FORMULA_INPUT_METHOD"
    PASTE_FORMULA = "PASTE_FORMULA"
    UPLOAD_FORMULA = "UPLOAD_FORMULA"
    MANUAL_HOME = "MANUAL_HOME"
    MANUAL_ADD_NAME = "MANUAL_ADD_NAME"
    MANUAL_ADD_INCLUSION = "MANUAL_ADD_INCLUSION"
    EST_MODE = "EST_MODE"
    LAB_ASK = "LAB_ASK"


class Ingredient(BaseModel):
    name: str
    inclusion: float

    def key(self) -> str:
        return self.name.strip().lower()


class Context(BaseModel):
    """Animal selections made before the formula is entered."""
    animal: Optional[str] = None
    poultry_type: Optional[str] = None
    genetic_line: Optional[str] = None
    species: Optional[str] = None
    stage: Optional[str] = None
    feed_form: Optional[str] = None


class Session(BaseModel):
    """Conversation state persisted per sender between webhook calls."""
    state: State = State.MAIN
    context: Context = Field(default_factory=Context)
    formula: List[Ingredient] = Field(default_factory=list)
    pending_name: Optional[str] = None
    # ingredient key -> {"cp": 46.5, "me": 2400, ...}
    lab_values: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    last_report: Optional[str] = None

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, value):
        # states dropped in a newer release restart at the main menu
        if isinstance(value, State):
            return value
        try:
            return State(value)
        except (ValueError, TypeError):
            return State.MAIN

    def reset(self) -> None:
        """Back to the main menu. The last report survives so RESULT can replay it."""
        self.state = State.MAIN
        self.context = Context()
        self.formula = []
        self.pending_name = None
        self.lab_values = {}

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data) -> "Session":
        """Raises pydantic.ValidationError when the stored document has the wrong shape."""
        return cls.model_validate(data)
