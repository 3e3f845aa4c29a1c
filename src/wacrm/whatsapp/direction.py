"""Message direction from the provider's three overlapping flags.

UAZAPI conflates three situations under ``fromMe``: a message the CRM sent
through the API, a message typed on the connected phone, and an echo from
another linked device. All three are the business side of the conversation.
"""

from typing import Literal

from .models import Direction

Origin = Literal["customer", "panel", "device"]


def resolve_direction(from_me: bool, was_sent_by_api: bool, device_sent: bool) -> Direction:
    """Classify a message as inbound (customer) or outbound (business).

    ``from_me`` is consulted first; when it is false the message is inbound
    whatever the other flags say.
    """
    if not from_me:
        return "inbound"
    return "outbound"


def resolve_origin(from_me: bool, was_sent_by_api: bool, device_sent: bool) -> Origin:
    """Where the message was typed: customer, CRM panel/API, or own device."""
    if not from_me:
        return "customer"
    if was_sent_by_api and not device_sent:
        return "panel"
    return "device"
