"""Structured payload: the versioned JSON envelope piped to backends.

Backends that understand it get prompt, context and conversation history
in one self-describing object; backends that don't simply see opaque text
on stdin.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from datetime import datetime, timezone

from crewx.models.provider import AIQueryOptions, ExecutionMode, StructuredMessage

PAYLOAD_VERSION = "1.0"

_USER_QUERY_RE = r'<user_query key="{key}">\s*([\s\S]*?)\s*</user_query>'
_ANY_USER_QUERY = re.compile(r'<user_query key="[^"]+">\s*([\s\S]*?)\s*</user_query>', re.IGNORECASE)


def is_structured_payload(value: str) -> bool:
    """True if ``value`` is a JSON object carrying ``prompt`` and ``messages``."""
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return False
    return isinstance(parsed, dict) and "prompt" in parsed and "messages" in parsed


def format_history(messages: Sequence[StructuredMessage]) -> str:
    return "\n".join(
        f"{index}. {'Assistant' if msg.is_assistant else 'User'}: {msg.text}"
        for index, msg in enumerate(messages, start=1)
    )


def create_structured_payload(
    prompt: str,
    context: str | None,
    options: AIQueryOptions,
    provider_name: str,
    mode: ExecutionMode = ExecutionMode.QUERY,
) -> str:
    messages = list(options.messages)
    normalized_context = (context or "").strip()

    payload = {
        "version": PAYLOAD_VERSION,
        "agent": {
            "id": options.agent_id or None,
            "provider": provider_name,
            "mode": mode.value,
            "model": options.model or None,
        },
        "prompt": prompt,
        "context": normalized_context,
        "messages": [m.to_dict() for m in messages],
        "metadata": {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "messageCount": len(messages),
            "formattedHistory": format_history(messages),
            "originalContext": normalized_context,
        },
    }
    return json.dumps(payload, ensure_ascii=False)


def build_piped_context(
    prompt: str,
    options: AIQueryOptions,
    provider_name: str,
    mode: ExecutionMode = ExecutionMode.QUERY,
) -> str | None:
    """Return what should be piped ahead of the prompt, if anything.

    An already-structured ``piped_context`` passes through untouched, even
    when ``options.messages`` differs from the messages it carries.
    """
    existing = options.piped_context.strip() if options.piped_context else ""
    if existing:
        if is_structured_payload(existing):
            return existing
        return create_structured_payload(prompt, existing, options, provider_name, mode)

    if options.messages:
        return create_structured_payload(prompt, None, options, provider_name, mode)

    return None


def wrap_user_query(user_query: str, security_key: str) -> str:
    """Wrap a user query in a keyed container to isolate it from instructions."""
    return f'\n<user_query key="{security_key}">\n{user_query}\n</user_query>'


def extract_user_query(wrapped: str, security_key: str | None = None) -> str:
    """Recover the user query from a wrapped prompt, or return it trimmed."""
    if not wrapped:
        return ""
    if security_key:
        match = re.search(_USER_QUERY_RE.format(key=re.escape(security_key)), wrapped)
    else:
        match = _ANY_USER_QUERY.search(wrapped)
    if match and match.group(1):
        return match.group(1).strip()
    return wrapped.strip()
