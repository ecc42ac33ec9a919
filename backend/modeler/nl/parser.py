import json
import re

FENCED_JSON = re.compile(r"```json\n([\s\S]*?)\n```")
FENCED_PLAIN = re.compile(r"```\n([\s\S]*?)\n```")
BARE_OBJECT = re.compile(r"({[\s\S]*})")

DEFAULT_MESSAGE = "I understood your request, but I need more information to proceed."


def clarification(message: str) -> dict:
    return {
        "message": message or DEFAULT_MESSAGE,
        "requiresMoreInfo": True,
        "requiredInfo": {"type": "clarification"},
    }


def extract_json_block(reply: str):
    """First fenced ```json block, then a plain fence, then the outermost {...} span."""
    for pattern in (FENCED_JSON, FENCED_PLAIN, BARE_OBJECT):
        match = pattern.search(reply)
        if match:
            return match.group(1)
    return None


def parse_reply(reply: str) -> dict:
    """
    Turn a free-text model reply into ``{message, changes?, requiresMoreInfo?, requiredInfo?}``.

    Never raises: anything unparsable becomes a clarification request.
    """
    reply = reply or ""
    block = extract_json_block(reply)
    if block is None:
        return clarification(reply)

    try:
        parsed = json.loads(block)
    except ValueError:
        return clarification(reply)

    if not isinstance(parsed, dict):
        return clarification(reply)

    if not parsed.get("message"):
        parsed["message"] = FENCED_JSON.sub("", reply).strip()
    return parsed
