"""Noise filter - events that must never become CRM messages.

Rules are evaluated in order and the first match wins:

1. anonymous link (``@lid``) identifiers - never a phone number, so they
   are checked before anything that could reach contact creation;
2. group chats (``isGroup`` flag or ``@g.us`` identifiers);
3. API echoes - messages the CRM itself sent through the provider API;
4. self-sent messages, only when the deployment mirrors customer messages
   exclusively.

A rejection is an expected outcome, not a delivery failure.
"""

from dataclasses import dataclass
from enum import Enum

from .models import InboundEvent

ANONYMOUS_LINK_MARKER = "@lid"
GROUP_SUFFIX = "@g.us"


class FilterReason(str, Enum):
    GROUP_MESSAGE = "group_message"
    SELF_SENT = "self_sent"
    API_ECHOED = "api_echoed"
    ANONYMOUS_LINK_IDENTIFIER = "anonymous_link_identifier"


REASON_DESCRIPTIONS: dict[FilterReason, str] = {
    FilterReason.GROUP_MESSAGE: "group message filtered",
    FilterReason.SELF_SENT: "self-sent message filtered",
    FilterReason.API_ECHOED: "message sent by the CRM API filtered to avoid loops",
    FilterReason.ANONYMOUS_LINK_IDENTIFIER: "anonymous link identifier filtered",
}


@dataclass(frozen=True)
class FilterDecision:
    accepted: bool
    reason: FilterReason | None = None

    @classmethod
    def accept(cls) -> "FilterDecision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: FilterReason) -> "FilterDecision":
        return cls(accepted=False, reason=reason)

    @property
    def description(self) -> str:
        if self.reason is None:
            return "accepted"
        return REASON_DESCRIPTIONS[self.reason]


def _identifiers(event: InboundEvent) -> tuple[str, ...]:
    """Sender and chat identifiers (sender_pn is always a phone, so skipped)."""
    return tuple(
        value
        for value in (event.message.sender, event.message.chatid, event.chat.wa_chatid)
        if value
    )


def evaluate(
    event: InboundEvent,
    *,
    filter_api_echoes: bool = True,
    filter_self_sent: bool = False,
) -> FilterDecision:
    """Decide whether an event may proceed through the pipeline.

    Args:
        event: Decoded webhook event.
        filter_api_echoes: Reject messages flagged ``wasSentByApi``.
        filter_self_sent: Reject every ``fromMe`` message.

    Returns:
        FilterDecision.accept() or FilterDecision.reject(reason).
    """
    identifiers = _identifiers(event)

    if any(ANONYMOUS_LINK_MARKER in value for value in identifiers):
        return FilterDecision.reject(FilterReason.ANONYMOUS_LINK_IDENTIFIER)

    if event.message.is_group or any(GROUP_SUFFIX in value for value in identifiers):
        return FilterDecision.reject(FilterReason.GROUP_MESSAGE)

    if filter_api_echoes and event.message.was_sent_by_api:
        return FilterDecision.reject(FilterReason.API_ECHOED)

    if filter_self_sent and event.message.from_me:
        return FilterDecision.reject(FilterReason.SELF_SENT)

    return FilterDecision.accept()
