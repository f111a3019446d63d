"""MTR reference router - workflow step table and stateless interaction checks."""

from fastapi import APIRouter, Depends

from mtr_api.core.deps import RequestContext, get_request_context
from mtr_api.core.mtr_steps import get_workflow_steps
from mtr_api.schemas.interaction import InteractionCheckRequest, InteractionCheckResponse
from mtr_api.schemas.mtr import WorkflowStepRead
from mtr_api.services.drug_knowledge_base import KnowledgeBase, get_knowledge_base
from mtr_api.services.interaction_checker import check_interactions

router = APIRouter(prefix="/mtr", tags=["mtr-reference"])


@router.get("/workflow/steps", response_model=list[WorkflowStepRead])
def list_workflow_steps(ctx: RequestContext = Depends(get_request_context)):
    """The six MTR steps in order, with dependencies."""
    return get_workflow_steps()


@router.post("/drug-interactions/check", response_model=InteractionCheckResponse)
def check_drug_interactions(
    data: InteractionCheckRequest,
    ctx: RequestContext = Depends(get_request_context),
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
):
    """
    Check an ad-hoc medication list without touching any session.

    Covers pairwise interactions, duplicate therapy and contraindications.
    """
    medications = [m.model_dump() for m in data.medications]
    report = check_interactions(medications, knowledge_base)
    return InteractionCheckResponse(
        report=report.to_dict(),
        knowledge_base_version=knowledge_base.version,
    )
