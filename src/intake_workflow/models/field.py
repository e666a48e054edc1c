"""Field schema models — the declarative description of every form field.

Each field maps to one UI control and one leaf of the form state:

    - text:         free-form input (optionally constrained by ``pattern``)
    - number:       numeric input; must parse and respect ``min_value``/``max_value``
    - boolean:      checkbox / yes-no toggle; ``must_be_true`` for acknowledgements
    - enum:         pick one option
    - multi_select: pick any number of options (checkbox set)
    - date:         ISO-8601 calendar date
    - file:         a capture slot (camera photo or uploaded file)

Visibility is data, not rendering logic: ``visible_if`` holds predicates
that are AND-ed against the current form state.  A hidden field never
counts against validity, even when ``required`` is set.
"""

from __future__ import annotations

import enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class FieldKind(str, enum.Enum):
    """Expected value shape of a field."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    MULTI_SELECT = "multi_select"
    DATE = "date"
    FILE = "file"


class Predicate(BaseModel):
    """A single condition that references another field by dotted path.

    Operators:
      - eq, ne: equality / inequality
      - lt, le, gt, ge: numeric comparisons
      - between: value is [min, max] inclusive
      - contains, not_contains: substring / element membership
      - contains_any, contains_all: set membership
      - matches: regex match
      - truthy, empty: presence checks (``value`` is ignored)
    """

    model_config = ConfigDict(frozen=True)

    path: str
    op: Literal[
        "eq", "ne", "contains", "not_contains", "matches",
        "contains_any", "contains_all",
        "lt", "le", "gt", "ge", "between",
        "truthy", "empty",
    ]
    value: Any = None


class FieldOption(BaseModel):
    """A selectable option with an id and display label."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str


class FieldSchema(BaseModel):
    """Immutable definition of one field.  Never mutated at runtime."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    kind: FieldKind
    required: bool = False
    visible_if: List[Predicate] = []

    # enum / multi_select: static options
    options: Optional[List[FieldOption]] = None
    # enum: name of an opaque lookup list supplied at runtime (patients, staff)
    options_source: Optional[str] = None

    # number constraints
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    # text constraint
    pattern: Optional[str] = None

    # boolean acknowledgement: only True counts as answered
    must_be_true: bool = False

    # written by a scorer at submission time, never by the user
    computed: bool = False

    # file fields: accepted MIME types (None -> DEFAULT_ACCEPT)
    accept: Optional[List[str]] = None

    default: Any = None
    help_text: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.kind in (FieldKind.ENUM, FieldKind.MULTI_SELECT):
            if not self.options and not self.options_source:
                raise ValueError(f"{self.key}: {self.kind.value} needs options or options_source")
        if self.min_value is not None and self.max_value is not None:
            if self.min_value > self.max_value:
                raise ValueError(f"{self.key}: min_value must be <= max_value")
        if self.computed and self.required:
            raise ValueError(f"{self.key}: computed fields cannot be required")
        return self

    @property
    def section(self) -> str:
        """First segment of the dotted key (e.g. ``housing`` for ``housing.mold``)."""
        return self.key.split(".", 1)[0]

    @property
    def option_ids(self) -> set[str] | None:
        """Static option ids, or None for dynamic / option-less fields."""
        if self.options is None:
            return None
        return {o.id for o in self.options}

    def empty_value(self) -> Any:
        """Schema default for a freshly opened form."""
        if self.default is not None:
            return self.default
        if self.kind == FieldKind.MULTI_SELECT:
            return []
        return None
