"""
In-process domain events.

Handlers run synchronously inside the publisher's transaction, so a handler
failure rolls back the change that triggered it.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscountApproved:
    discount_id: int
    order_id: int
    company_id: int
    reviewer_user_id: int


@dataclass(frozen=True)
class DiscountRejected:
    discount_id: int
    order_id: int
    company_id: int
    reviewer_user_id: int
    was_approved: bool = False


_handlers: Dict[Type, List[Callable]] = defaultdict(list)


def subscribe(event_type: Type, handler: Callable) -> None:
    """Register handler(event, session) for an event type (once)."""
    if handler not in _handlers[event_type]:
        _handlers[event_type].append(handler)


def publish(event, session) -> None:
    for handler in list(_handlers.get(type(event), ())):
        logger.debug(f"[EVENTS] {type(event).__name__} -> {handler.__name__}")
        handler(event, session)
