"""Input validation and sanitization for assistant requests."""

import logging
import re
import uuid

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000


class InvalidRequestError(ValueError):
    """A request field the caller must fix; answered with 400."""


def detect_prompt_injection(content: str) -> list:
    """
    Detect prompt injection patterns in content.

    Args:
        content: Message content to check

    Returns:
        List of detected pattern types (empty if none)
    """
    if not content:
        return []

    patterns = []
    content_lower = content.lower()

    meta_patterns = [
        r"ignore\s+(previous|all|the)\s+(instructions?|rules?|prompts?)",
        r"forget\s+(previous|all|the)\s+(instructions?|rules?|prompts?)",
        r"disregard\s+(previous|all|the)\s+(instructions?|rules?|prompts?)",
        r"ignore\s+(as\s+)?(instru[cç][oõ]es|regras)\s+anteriores",
        r"you\s+are\s+now\s+(a|an)\s+",
    ]

    disclosure_patterns = [
        r"show\s+(me\s+)?(your\s+)?(system\s+)?(prompt|instructions?|rules?)",
        r"reveal\s+(your\s+)?(system\s+)?(prompt|instructions?|rules?)",
        r"mostre\s+(seu|o)\s+prompt",
    ]

    cross_access_patterns = [
        r"access\s+(another|other|different)\s+(tenant|user|account)",
        r"switch\s+to\s+(tenant|user|account)\s+",
    ]

    # Users pasting directive tags to trigger actions themselves
    directive_patterns = [
        r"\[action:[a-z_-]+:",
    ]

    all_patterns = [
        ("meta_instruction", meta_patterns),
        ("disclosure_attempt", disclosure_patterns),
        ("cross_access_attempt", cross_access_patterns),
        ("directive_injection", directive_patterns),
    ]

    for pattern_type, pattern_list in all_patterns:
        for pattern in pattern_list:
            if re.search(pattern, content_lower):
                patterns.append(pattern_type)
                break  # Only report each type once

    return patterns


def sanitize_message_content(content: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Sanitize message content and log prompt injection attempts.

    Detected patterns are logged, not blocked. Directive tags typed by the
    user are neutralised so they can never be echoed back as a command.
    """
    if not content:
        return ""

    injection_patterns = detect_prompt_injection(content)
    if injection_patterns:
        logger.warning(
            "Prompt injection patterns detected",
            extra={"patterns": injection_patterns, "content_length": len(content)},
        )

    if "directive_injection" in injection_patterns:
        content = re.sub(r"\[(\s*)action:", r"(\1ACTION:", content, flags=re.IGNORECASE)

    if len(content) > max_length:
        content = content[:max_length] + "... [truncated]"

    # Remove control characters except newlines and tabs
    content = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', content)

    return content


def validate_tenant_id(tenant_id: str) -> None:
    """
    Validate tenant_id format (UUID).

    Raises:
        InvalidRequestError: If validation fails
    """
    if not tenant_id:
        raise InvalidRequestError("tenantId cannot be empty")

    if len(tenant_id) > 128:
        raise InvalidRequestError("tenantId too long")

    try:
        uuid.UUID(tenant_id)
    except ValueError:
        raise InvalidRequestError(f"Invalid tenantId format (must be UUID): {tenant_id}")


def validate_message_text(message: str) -> str:
    """
    Validate and sanitize the inbound user message.

    Raises:
        InvalidRequestError: If the message is empty
    """
    if not message or not message.strip():
        raise InvalidRequestError("message cannot be empty")
    return sanitize_message_content(message.strip())
