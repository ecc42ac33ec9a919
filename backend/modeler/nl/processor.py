"""
Natural-language model editing.

The model's reply is advisory: process_request only returns the parsed
proposal. Changes reach the database through graph.changes.apply_changes,
after the user confirms them.
"""

from typing import Dict, List, Optional

import requests
from sqlalchemy.orm import Session

from modeler.errors import InvalidRequestError, UpstreamError
from modeler.graph.snapshot import load_snapshot
from modeler.log import get_logger
from modeler.nl.client import ChatCompletionsClient
from modeler.nl.parser import parse_reply
from modeler.nl.prompt import build_messages

logger = get_logger(__name__)


def process_request(
    db: Session,
    client: ChatCompletionsClient,
    data_model_id: str,
    request: str,
    history: Optional[List[Dict[str, str]]] = None,
) -> dict:
    if not request or not request.strip():
        raise InvalidRequestError("Request is required")

    snapshot = load_snapshot(db, data_model_id)
    messages = build_messages(request, history, snapshot)
    logger.info(f"[NL] model={data_model_id} history={len(messages) - 2} request={request[:80]!r}")

    try:
        reply = client.generate(messages)
    except (requests.RequestException, KeyError, IndexError, ValueError) as exc:
        logger.error(f"[NL] completion failed: {exc}")
        raise UpstreamError("Failed to process request with AI", details=str(exc))

    result = parse_reply(reply)
    if result.get("requiresMoreInfo"):
        logger.info("[NL] reply asks for clarification")
    return result
