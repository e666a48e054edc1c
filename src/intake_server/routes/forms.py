"""Form definitions and lookup lists.

Form definitions come from the ``FormSchemaStore`` loaded at startup.
Patients, staff and the required-forms registry come from the
persistence gateway and need a caller identity.
"""

from fastapi import APIRouter, Depends

from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.models.form import FormSchema
from intake_workflow.models.registry import RequiredFormRegistryEntry
from intake_workflow.schemas import FormSchemaStore

from intake_server.dependencies import get_gateway, get_store, get_user_id

router = APIRouter(tags=["forms"])


# ------------------------------------------------------------------
# Form definitions
# ------------------------------------------------------------------

@router.get("/forms")
def list_forms(
    store: FormSchemaStore = Depends(get_store),
) -> list[dict]:
    """Return ``[{key, display_name, kind, steps}]`` for every loaded form."""
    return store.list_forms()


@router.get("/forms/{form_key}")
def get_form(
    form_key: str,
    store: FormSchemaStore = Depends(get_store),
) -> FormSchema:
    """Return the full definition of one form.  404 for an unknown key."""
    return store.get(form_key)


# ------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------

@router.get("/patients")
async def list_patients(
    user_id: str = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> list[dict]:
    """Patients for the ``patients`` option source."""
    return await gateway.list_patients()


@router.get("/staff")
async def list_staff(
    user_id: str = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> list[dict]:
    """Active staff for the ``staff`` option source."""
    return await gateway.list_staff()


@router.get("/patients/{patient_id}/required-forms")
async def list_required_forms(
    patient_id: str,
    user_id: str = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> list[RequiredFormRegistryEntry]:
    """The patient's required-document checklist with completion status."""
    return await gateway.list_required_forms(patient_id)
