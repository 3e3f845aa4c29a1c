"""Phone canonicalization for WhatsApp identifiers."""

import re

from .models import Direction, InboundEvent

MIN_PHONE_DIGITS = 10

_NON_DIGITS = re.compile(r"\D")


def canonicalize_phone(raw: str | None) -> str:
    """Reduce a raw identifier to a digits-only phone number.

    Drops everything from the first ``@`` (``@s.whatsapp.net``, ``@c.us``)
    and then every non-digit (``+55 11 99219-5126``).

    Returns:
        The digits, or an empty string when fewer than 10 remain.
    """
    if not raw:
        return ""
    digits = _NON_DIGITS.sub("", raw.split("@", 1)[0])
    if len(digits) < MIN_PHONE_DIGITS:
        return ""
    return digits


def phone_candidates(event: InboundEvent, direction: Direction) -> tuple[str, ...]:
    """Raw identifier fields in the order they should be tried.

    Outbound messages are addressed to the chat, and their sender is the
    business's own number, so the chat identifiers come first. Inbound
    messages come from the customer, so the sender comes first.
    """
    message = event.message
    chat = event.chat
    if direction == "outbound":
        return (message.chatid, chat.wa_chatid, chat.phone, message.sender_pn, message.sender)
    return (message.sender_pn, message.chatid, chat.wa_chatid, chat.phone, message.sender)


def select_phone(event: InboundEvent, direction: Direction) -> str:
    """Canonical phone of the customer side of the conversation.

    The first non-empty raw field wins; a malformed first choice is not
    rescued by later fields, so the result never silently switches sides.
    The instance's own number (``owner``) is never the customer side, so
    a choice equal to it is rejected too.

    Returns:
        Canonical phone, or an empty string if it is invalid or missing.
    """
    for raw in phone_candidates(event, direction):
        if raw:
            phone = canonicalize_phone(raw)
            if phone and phone == canonicalize_phone(event.owner):
                return ""
            return phone
    return ""
