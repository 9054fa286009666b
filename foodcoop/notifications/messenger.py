from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from foodcoop.core.config import get_settings

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    def send_template(self, template_id: str, context: dict[str, Any], recipients: list[str]) -> None:
        ...


class LoggingMessenger:
    """Default backend, hands messages to the log only."""

    def send_template(self, template_id: str, context: dict[str, Any], recipients: list[str]) -> None:
        logger.info(
            "message template=%s recipients=%s subject=%s",
            template_id,
            ",".join(recipients),
            context.get("subject"),
        )


@dataclass
class OutboxMessage:
    template_id: str
    context: dict[str, Any]
    recipients: list[str]


@dataclass
class OutboxMessenger:
    messages: list[OutboxMessage] = field(default_factory=list)

    def send_template(self, template_id: str, context: dict[str, Any], recipients: list[str]) -> None:
        self.messages.append(OutboxMessage(template_id=template_id, context=dict(context), recipients=list(recipients)))


_outbox = OutboxMessenger()


def get_messenger() -> Messenger:
    backend = get_settings().messenger_backend
    if backend == "outbox":
        return _outbox
    return LoggingMessenger()


@dataclass(frozen=True)
class GroupNotice:
    ordergroup_id: int
    ordergroup_name: str
    group_order_id: int
    price_cents: int
    recipients: tuple[str, ...]


@dataclass(frozen=True)
class OrderFinishedNotice:
    order_id: int
    supplier_name: str
    ends: str
    groups: tuple[GroupNotice, ...]


def notify_order_finished(messenger: Messenger, notice: OrderFinishedNotice) -> int:
    """Send the "order finished" template to every group with opted-in members.

    Returns the number of messages handed to the messenger.
    """
    settings = get_settings()
    sent = 0
    for group in notice.groups:
        logger.debug("send 'order finished' message to %s", group.ordergroup_name)
        if not group.recipients:
            continue
        context = {
            "subject": f"Order finished: {notice.supplier_name}",
            "order_id": notice.order_id,
            "supplier": notice.supplier_name,
            "ends": notice.ends,
            "group": group.ordergroup_name,
            "group_order_id": group.group_order_id,
            "price_cents": group.price_cents,
        }
        try:
            messenger.send_template(settings.order_finished_template, context, list(group.recipients))
        except Exception:
            logger.exception(
                "order finished message for order=%s to group=%s failed",
                notice.order_id,
                group.ordergroup_name,
            )
            continue
        sent += 1
    return sent
