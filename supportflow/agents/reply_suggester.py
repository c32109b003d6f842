"""
Reply Suggester - draft replies for agents

Prompt construction, response parsing and the canned replies returned when
the model path fails.
"""
from typing import Dict, List, Optional, Sequence

from supportflow.agents.categorizer import load_json_object
from supportflow.exceptions import MalformedResponseError
from supportflow.models.schemas import Message, Ticket, TicketCategory

SUGGESTION_COUNT = 3
FALLBACK_SUGGESTION_CONFIDENCE = 0.5
DEFAULT_SUGGESTION_CONFIDENCE = 0.8

CANNED_SUGGESTIONS: Dict[str, List[str]] = {
    TicketCategory.ACCOUNT_LOGIN.value: [
        "Thanks for reaching out. Could you try resetting your password using the \"Forgot password\" link on the login page and let us know if that works?",
        "I'm sorry you're having trouble signing in. Can you confirm the email address on your account so we can check its status?",
        "We've reviewed your account and cleared any temporary lock. Please try logging in again and clear your browser cache if the problem continues.",
    ],
    TicketCategory.TECHNICAL_SUPPORT.value: [
        "Thanks for the report. Could you share the exact steps you took and any error message you saw?",
        "Please try clearing your browser cache or restarting the app, then let us know whether the issue persists.",
        "We're looking into this now. Could you tell us which device, browser and version you are using?",
    ],
    TicketCategory.BILLING_PAYMENTS.value: [
        "Thanks for contacting us about billing. Could you share the invoice number or the date of the charge in question?",
        "I've checked your account and will review the payment details with our billing team. We'll follow up shortly.",
        "If you were charged incorrectly, we'll process a refund once we've verified the transaction. Could you confirm the last four digits of the card used?",
    ],
    "default": [
        "Thank you for reaching out. We've received your request and are looking into it.",
        "Could you provide a few more details so we can help you faster?",
        "We appreciate your patience. A member of our team will get back to you shortly.",
    ],
}

SUGGESTION_SYSTEM_PROMPT = f"""You are a helpful, professional customer support agent.
Write {SUGGESTION_COUNT} different reply drafts to the customer's ticket.
Respond with ONLY a JSON object:
{{"suggestions": ["reply 1", "reply 2", "reply 3"], "confidence": 0.0-1.0}}"""


def canned_suggestions(category: Optional[str]) -> List[str]:
    """Canned replies for a category, the default set when unknown"""
    return list(CANNED_SUGGESTIONS.get(category or "", CANNED_SUGGESTIONS["default"]))


def format_conversation(messages: Sequence[Message]) -> str:
    """Render messages as ``role: text`` lines"""
    return "\n".join(f"{m.role}: {m.text}" for m in messages)


def build_suggestion_prompt(ticket: Ticket, messages: Sequence[Message]) -> str:
    lines = [
        f"Subject: {ticket.subject}",
        f"Description: {ticket.description}",
        f"Category: {ticket.category or 'Unknown'}",
        f"Priority: {ticket.priority or 'Unknown'}",
    ]
    conversation = format_conversation(messages)
    if conversation:
        lines.extend(["", "Conversation so far:", conversation])
    return "\n".join(lines)


def parse_suggestions(raw: Optional[str]):
    """
    Parse the reply-suggestion answer

    Returns:
        (suggestions, confidence); at most three non-empty strings

    Raises:
        MalformedResponseError: No usable suggestions
    """
    data = load_json_object(raw)

    suggestions = data.get("suggestions")
    if not isinstance(suggestions, list):
        raise MalformedResponseError("Missing 'suggestions' array")

    suggestions = [s.strip() for s in suggestions if isinstance(s, str) and s.strip()]
    if not suggestions:
        raise MalformedResponseError("Model returned no suggestions")

    confidence = data.get("confidence", DEFAULT_SUGGESTION_CONFIDENCE)
    try:
        confidence = min(max(float(confidence), 0.0), 1.0)
    except (TypeError, ValueError):
        confidence = DEFAULT_SUGGESTION_CONFIDENCE

    return suggestions[:SUGGESTION_COUNT], confidence
