"""
Single-language output directive
"""

from typing import List

LOCALE_DIRECTIVE = (
    "Always respond in English only. Keep every reply, code comment and "
    "commit message in English, whatever language the request uses."
)


def enforce_locale(messages: List[dict], directive: str = LOCALE_DIRECTIVE) -> List[dict]:
    """
    Prepend the language directive to the system message, else to the first
    user message. No-op when neither exists.

    Returns a new list; the input messages are not mutated. String content
    stays a string, block content stays a block list.
    """
    target = None
    for idx, msg in enumerate(messages):
        if msg.get("role") == "system":
            target = idx
            break
    if target is None:
        for idx, msg in enumerate(messages):
            if msg.get("role") == "user":
                target = idx
                break
    if target is None:
        return list(messages)

    result = list(messages)
    msg = dict(messages[target])
    content = msg.get("content")
    if isinstance(content, list):
        msg["content"] = [{"type": "text", "text": directive}] + list(content)
    elif content:
        msg["content"] = f"{directive}\n\n{content}"
    else:
        msg["content"] = directive
    result[target] = msg
    return result
