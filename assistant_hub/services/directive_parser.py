"""Extract an action directive from raw model text.

Grammar: ``[ACTION:<type>:<json-object>]``. Only the first well-formed tag
counts. Anything malformed yields no directive and leaves the text untouched;
parsing never raises.
"""

import json
import logging
import re
from typing import Iterable, Optional, Tuple

from assistant_hub.models.directive import DIRECTIVE_SPECS, Directive, ParsedReply

logger = logging.getLogger(__name__)

_TAG_OPENER = re.compile(r"\[ACTION:([A-Za-z][A-Za-z0-9_-]*):")


def _balanced_object_end(text: str, start: int) -> Optional[int]:
    """
    Index just past the JSON object starting at ``text[start]``.

    Braces inside JSON strings (including escaped quotes) are ignored.
    Returns None when the object is not closed.
    """
    if start >= len(text) or text[start] != "{":
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def _match_tag(raw_text: str, opener: "re.Match") -> Optional[Tuple[int, str, dict]]:
    """Return (tag_end, type, payload) for a well-formed tag at ``opener``."""
    json_start = opener.end()
    # Tolerate spaces between the colon and the object
    while json_start < len(raw_text) and raw_text[json_start] in " \t":
        json_start += 1
    json_end = _balanced_object_end(raw_text, json_start)
    if json_end is None:
        return None

    close = json_end
    while close < len(raw_text) and raw_text[close] in " \t":
        close += 1
    if close >= len(raw_text) or raw_text[close] != "]":
        return None

    try:
        payload = json.loads(raw_text[json_start:json_end])
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return close + 1, opener.group(1), payload


def parse(raw_text: str, allowed_types: Optional[Iterable[str]] = None) -> ParsedReply:
    """
    Split model text into the visible message and an optional directive.

    Args:
        raw_text: Reply text as returned by the provider
        allowed_types: Directive types valid for the current endpoint; when
            None every type in the grammar is accepted

    Returns:
        ParsedReply. ``directive`` is None when no well-formed tag with a
        known type is found, in which case ``visible_message == raw_text``.
    """
    if not raw_text:
        return ParsedReply(visible_message=raw_text or "")

    known = set(allowed_types) if allowed_types is not None else set(DIRECTIVE_SPECS)

    for opener in _TAG_OPENER.finditer(raw_text):
        matched = _match_tag(raw_text, opener)
        if matched is None:
            continue
        tag_end, directive_type, payload = matched
        if directive_type not in known:
            logger.info("Ignoring directive of unknown type", extra={"directive_type": directive_type})
            continue

        before = raw_text[:opener.start()].rstrip()
        after = raw_text[tag_end:].lstrip()
        if before and after:
            visible = f"{before}\n{after}"
        else:
            visible = before or after
        return ParsedReply(
            visible_message=visible,
            directive=Directive.proposed(directive_type, payload),
        )

    return ParsedReply(visible_message=raw_text)
