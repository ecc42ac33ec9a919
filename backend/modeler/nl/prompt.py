import json
from pathlib import Path
from typing import Dict, List, Optional

PROMPT_DIR = Path(__file__).resolve().parent / "prompts"

SNAPSHOT_KEYS = ("entities", "attributes", "referentials", "relationships", "rules")
HISTORY_ROLES = ("user", "assistant")


def load_prompt(filename: str) -> str:
    return (PROMPT_DIR / filename).read_text(encoding="utf-8")


def build_system_prompt(snapshot: dict) -> str:
    template = load_prompt("system.txt")
    return template.format(
        **{key: json.dumps(snapshot.get(key, []), default=str) for key in SNAPSHOT_KEYS}
    )


def build_messages(
    request: str, history: Optional[List[Dict[str, str]]], snapshot: dict
) -> List[Dict[str, str]]:
    """System prompt with the model embedded, then prior turns, then the new request."""
    messages = [{"role": "system", "content": build_system_prompt(snapshot)}]
    for turn in history or []:
        if turn.get("role") in HISTORY_ROLES and turn.get("content"):
            messages.append({"role": turn["role"], "content": turn["content"]})
    messages.append({"role": "user", "content": request})
    return messages
