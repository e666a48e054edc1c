#!/usr/bin/env python3
"""Walk an intake form end-to-end with a mocked gateway and camera.

Answers every visible field step by step, captures or uploads a photo for
each capture slot, then submits and prints the payload the persistence
collaborator would have received.

By default answers are **randomised** (``--random``, on by default) so each
run explores a different path through the visibility rules.  Use
``--no-random`` for a deterministic walk.

Usage::

    # Default run (CHW encounter, random answers)
    python scripts/simulate_intake.py

    # A patient-portal document with a fixed seed
    python scripts/simulate_intake.py -f insurance_card_copy --seed 7

    # List available forms
    python scripts/simulate_intake.py --list-forms
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
from datetime import date
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# test fakes.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

from helpers.builders import jpeg_bytes  # noqa: E402
from helpers.fakes import PATIENTS, STAFF, FakeCamera, MockGateway  # noqa: E402

from intake_workflow.errors import SubmissionError, ValidationIncomplete  # noqa: E402
from intake_workflow.models.field import FieldKind, FieldSchema  # noqa: E402
from intake_workflow.models.submission import MultipartPayload  # noqa: E402
from intake_workflow.schemas import FormSchemaStore  # noqa: E402
from intake_workflow.workflow import IntakeWorkflow  # noqa: E402

_DEFAULT_FORM = "chw_encounter"

# Fields whose pattern random text would not satisfy.
_PATTERNED_ANSWERS = {
    "patient_info.encounter_start_time": "09:30",
    "demographics.zip_code": "48201",
    "contact.phone": "+1 313 555 0100",
}

_RANDOM_TEXT_POOL = [
    "Eastside Clinic",
    "Jo Moore",
    "Needs follow-up next week",
    "Blue Lake Health",
    "n/a",
]

_OPTION_SOURCES = {
    "patients": [p["id"] for p in PATIENTS],
    "staff": [s["id"] for s in STAFF],
}


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------

_DOUBLE_LINE = "═" * 62
_SINGLE_LINE = "─" * 62

_random_mode = True
_quiet = False


def _print(*args, **kwargs) -> None:
    """Print wrapper that respects the --quiet flag."""
    if not _quiet:
        print(*args, **kwargs)


def log_step_header(index: int, total: int, title: str) -> None:
    _print(f"\n{_DOUBLE_LINE}")
    _print(f" STEP {index + 1}/{total}: {title}")
    _print(_DOUBLE_LINE)


# ---------------------------------------------------------------------------
# Mock answer generation
# ---------------------------------------------------------------------------


def _pick(seq: list) -> Any:
    return random.choice(seq) if _random_mode else seq[0]


def mock_answer(fs: FieldSchema) -> Any:
    """Produce a value that satisfies the field's own constraints."""
    if fs.key in _PATTERNED_ANSWERS:
        return _PATTERNED_ANSWERS[fs.key]

    if fs.kind == FieldKind.TEXT:
        return _pick(_RANDOM_TEXT_POOL)

    if fs.kind == FieldKind.NUMBER:
        lo = int(fs.min_value if fs.min_value is not None else 0)
        hi = int(fs.max_value if fs.max_value is not None else 10)
        return random.randint(lo, hi) if _random_mode else (lo + hi) // 2

    if fs.kind == FieldKind.BOOLEAN:
        # Acknowledgements only count when ticked
        if fs.must_be_true or not _random_mode:
            return True
        return random.choice([True, False])

    if fs.kind == FieldKind.DATE:
        return date.today().isoformat()

    if fs.kind == FieldKind.ENUM:
        if fs.options_source:
            return _pick(_OPTION_SOURCES[fs.options_source])
        return _pick([o.id for o in fs.options])

    if fs.kind == FieldKind.MULTI_SELECT:
        ids = [o.id for o in fs.options or []]
        if not ids:
            return []
        if _random_mode:
            return random.sample(ids, random.randint(1, len(ids)))
        return ids[:1]

    raise ValueError(f"No mock answer for {fs.kind.value} field '{fs.key}'")


async def fill_slot(wf: IntakeWorkflow, key: str) -> None:
    """Camera capture or file upload, picked at random."""
    if _random_mode and random.choice([True, False]):
        await wf.open_camera(key)
        artifact = wf.capture(key)
    else:
        artifact = wf.upload(key, jpeg_bytes(), filename=f"{key}.jpg", mime_type="image/jpeg")
    _print(f" [S] {key}: {artifact.source_kind.value} {artifact.mime_type} "
           f"{artifact.size} bytes")


async def answer_step(wf: IntakeWorkflow) -> None:
    """Answer visible fields until answering reveals nothing new."""
    fields = wf.schema.field_map()
    answered: set[str] = set()
    while True:
        pending = [
            fv for fv in wf.get_visible_fields()
            if fv.key not in answered and not fields[fv.key].computed
        ]
        if not pending:
            return
        for fv in pending:
            fs = fields[fv.key]
            answered.add(fv.key)
            if fs.kind == FieldKind.FILE:
                await fill_slot(wf, fv.key)
                continue
            value = mock_answer(fs)
            wf.set_field(fv.key, value)
            _print(f" [Q] {fs.label} ({fs.key}) -- {fs.kind.value}")
            _print(f" [A] {value}")


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


async def run_simulation(form_key: str, verbose: bool) -> int:
    store = FormSchemaStore()
    store.load()
    if form_key not in store.forms:
        # Always print errors regardless of --quiet
        print(f"Error: Unknown form '{form_key}'.")
        print(f"Available forms: {', '.join(sorted(store.forms))}")
        return 1

    schema = store.get(form_key)
    gateway = MockGateway(registry={k: "pending" for k in store.required_forms})
    camera = FakeCamera()
    patient_id = None if schema.patient_field else PATIENTS[0]["id"]
    wf = IntakeWorkflow(schema, gateway=gateway, camera=camera, patient_id=patient_id)
    await wf.refresh_registry()

    _print(f"{'=' * 62}")
    _print(" INTAKE WORKFLOW SIMULATION")
    _print(f" Form:    {schema.display_name} ({schema.kind})")
    _print(f" Random:  {'ON' if _random_mode else 'OFF'}")
    _print(f"{'=' * 62}")

    total = len(schema.steps)
    while True:
        step = wf.get_step_view()
        log_step_header(step.index, total, step.title)
        await answer_step(wf)
        try:
            moved = wf.next()
        except ValidationIncomplete as exc:
            print(f"\n [!] Step '{step.id}' still invalid:")
            for issue in exc.issues:
                print(f"     {issue.key}: {issue.reason}")
            return 1
        if not moved:
            break
        _print(f"\n{_SINGLE_LINE}")
        _print(f" Completed: {', '.join(wf.get_completion_state().completed)}")
        _print(_SINGLE_LINE)

    try:
        result = await wf.submit()
    except (ValidationIncomplete, SubmissionError) as exc:
        print(f"\n [!] Submission failed: {type(exc).__name__}: {exc}")
        return 1

    payload = gateway.encounters[-1] if schema.kind == "encounter" else gateway.forms[-1][2]

    _print(f"\n{_DOUBLE_LINE}")
    _print(" SUBMISSION")
    _print(_DOUBLE_LINE)
    _print(f" Status:   {result.status.value}")
    _print(f" Record:   {result.record_id}")
    _print(f" Message:  {result.message}")
    if isinstance(payload, MultipartPayload):
        _print(f" Parts:    {', '.join(sorted(payload.parts))}")
    if verbose:
        _print(f"\n{json.dumps(payload.data, indent=2, default=str)}")
    if schema.kind == "document":
        entry = wf.registry.get(form_key)
        _print(f" Registry: {entry.status.value if entry else '(not required)'}")
    _print(f" Camera:   {camera.opened} opened, {camera.releases} released")

    _print(f"\n{'=' * 62}")
    _print(" Simulation complete")
    _print(f"{'=' * 62}")
    return 0 if camera.open_streams == 0 else 1


def list_forms(store: FormSchemaStore) -> None:
    print("Available forms:")
    print()
    for i, summary in enumerate(store.list_forms(), 1):
        print(f"  {i:2d}. {summary['key']:<28s} {summary['kind']:<9s} ({summary['steps']} steps)")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Walk an intake form end-to-end with a mocked gateway and camera.",
    )
    parser.add_argument(
        "-f", "--form",
        default=_DEFAULT_FORM,
        help=f"Form key to simulate (default: {_DEFAULT_FORM})",
    )
    parser.add_argument(
        "--list-forms",
        action="store_true",
        help="List all available forms and exit",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible runs",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print the submitted structured data",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all print output (exit code still reflects success/failure)",
    )
    parser.add_argument(
        "--random",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Randomise mock answers (default: on). Use --no-random for deterministic mode.",
    )
    args = parser.parse_args()

    global _random_mode, _quiet
    _random_mode = args.random
    _quiet = args.quiet
    if args.seed is not None:
        random.seed(args.seed)

    if args.list_forms:
        store = FormSchemaStore()
        store.load()
        list_forms(store)
        sys.exit(0)

    sys.exit(asyncio.run(run_simulation(args.form, args.verbose)))


if __name__ == "__main__":
    main()
