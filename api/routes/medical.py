"""Reference endpoints that need no session: guidelines and drug interactions."""

from fastapi import APIRouter

from api.dependencies import LifecycleManagerDep, RequesterDep
from api.routes.sessions import DrugInteractionRequest
from models.drugs import InteractionReport
from models.guidelines import ClinicalGuidelines

router = APIRouter(tags=["medical"])


@router.post("/drug-interactions", response_model=InteractionReport)
def check_drug_interactions(
    request: DrugInteractionRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    """Check drugs against each other, without patient context."""
    return manager.check_general_drug_interactions(request.drug_ids)


@router.get("/clinical-guidelines/{condition}", response_model=ClinicalGuidelines)
def get_clinical_guidelines(
    condition: str,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    return manager.clinical_guidelines(condition)
