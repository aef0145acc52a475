from typing import Iterable, List, Mapping, Optional

from google.genai import types

from config import SYSTEM_PROMPT_ACK, SYSTEM_PROMPT_PREAMBLE


def _turn(role: str, text: str) -> types.Content:
    return types.Content(role=role, parts=[types.Part(text=text)])


def build_history(history: Iterable[Mapping], system_prompt: Optional[str] = None) -> List[types.Content]:
    """Client transcript -> Gemini turns.

    A system prompt becomes a user turn plus a canned model acknowledgement,
    so it works without upstream system-role support. Everything that is not
    ``user`` is sent as a model turn; order is kept as-is.
    """
    contents: List[types.Content] = []
    if system_prompt:
        contents.append(_turn("user", SYSTEM_PROMPT_PREAMBLE + system_prompt))
        contents.append(_turn("model", SYSTEM_PROMPT_ACK))
    for item in history or []:
        role = "user" if item.get("role") == "user" else "model"
        contents.append(_turn(role, item.get("content") or ""))
    return contents
