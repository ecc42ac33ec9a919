from fastapi import APIRouter, Depends

from modeler.api.deps import RequestContext, get_context, get_llm_client
from modeler.graph.changes import apply_changes, preview_changes
from modeler.graph.snapshot import load_snapshot
from modeler.nl.client import ChatCompletionsClient
from modeler.nl.processor import process_request
from modeler.schemas import NLChangesRequest, NLProcessRequest

router = APIRouter(prefix="/api/nl-interface", tags=["nl"])


@router.post("/process")
def process(
    body: NLProcessRequest,
    ctx: RequestContext = Depends(get_context),
    client: ChatCompletionsClient = Depends(get_llm_client),
):
    ctx.require_data_model(body.data_model_id)
    history = [turn.model_dump() for turn in body.history]
    return process_request(ctx.db, client, body.data_model_id, body.request, history)


@router.post("/preview")
def preview(body: NLChangesRequest, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    return preview_changes(load_snapshot(ctx.db, body.data_model_id), body.changes)


@router.post("/apply")
def apply(body: NLChangesRequest, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    return apply_changes(ctx.db, body.data_model_id, body.changes, created_by=ctx.user.id)
