"""NoteRenderer — Jinja2 renderer for the encounter progress note.

When the structured encounter tables are unavailable, an encounter is
stored as a plain-text progress note instead.  The note lists the visit
details and the key screening answers so clinical staff can still act on
them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jinja2

NOTE_TYPE = "CHW_SDOH_Screening"


def _na(value: Any, default: str = "N/A") -> Any:
    if isinstance(value, jinja2.Undefined) or value is None or value == "" or value == []:
        return default
    return value


def _yesno(value: Any) -> str:
    return "Yes" if value else "No"


class NoteRenderer:
    """Renders encounter data into progress-note text.

    Args:
        template_dir: optional override for the template directory.
            Defaults to ``template/`` sibling of this module.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        if template_dir is None:
            template_dir = Path(__file__).parent / "template"
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=jinja2.ChainableUndefined,
        )
        self._env.filters["na"] = _na
        self._env.filters["yesno"] = _yesno

    def render_encounter(self, data: dict[str, Any]) -> str:
        """Render the fallback note for an assembled encounter body."""
        template = self._env.get_template("chw_encounter_note.jinja2")
        return template.render(**data).strip()
