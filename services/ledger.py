"""Order ledger: creation, conditional status transitions and queries."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import update

from errors import NotFoundError
from models import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_FAILED,
    ORDER_PENDING,
    ORDER_PROCESSING,
    VALID_ORDER_STATUSES,
    Order,
    SubscriptionPlan,
    User,
    can_transition,
)
from utils import paginate, utc_now

logger = logging.getLogger("payments")


class OrderLedger:
    """Every transition is one ``UPDATE ... WHERE status = expected``.

    Transition methods return ``True`` when the row moved and ``False`` when
    another writer got there first. None of them commit; callers own the
    transaction boundary.
    """

    def __init__(self, session):
        self.session = session

    def create(self, user: User, plan: SubscriptionPlan) -> Order:
        order = Order(
            user_id=user.id,
            plan_id=plan.id,
            amount=plan.price,
            currency=plan.currency,
            status=ORDER_PENDING,
        )
        self.session.add(order)
        self.session.flush()
        logger.info("Order %s created for user %s (%s %s)", order.id, user.id, plan.name, plan.price)
        return order

    def _transition(self, order_id: int, expected: str, target: str, *criteria, **values) -> bool:
        if not can_transition(expected, target):
            raise ValueError(f"Illegal order transition {expected} -> {target}")
        now = utc_now()
        result = self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected, *criteria)
            .values(status=target, updated_at=now, **values)
            .execution_options(synchronize_session="fetch")
        )
        moved = result.rowcount == 1
        if moved:
            logger.info("Order %s: %s -> %s", order_id, expected, target)
        else:
            logger.warning("Order %s: %s -> %s skipped, status changed", order_id, expected, target)
        return moved

    def mark_processing(self, order_id: int, payment_ref: str) -> bool:
        return self._transition(order_id, ORDER_PENDING, ORDER_PROCESSING, payment_ref=payment_ref)

    def mark_failed(self, order_id: int, expected: str = ORDER_PROCESSING) -> bool:
        return self._transition(order_id, expected, ORDER_FAILED)

    def complete(self, order_id: int, payment_ref: str) -> bool:
        return self._transition(
            order_id,
            ORDER_PROCESSING,
            ORDER_COMPLETED,
            payment_ref=payment_ref,
            completed_at=utc_now(),
        )

    def cancel(self, order_id: int, user_id: int) -> None:
        """Cancel a PENDING order owned by *user_id*.

        Raises:
            NotFoundError: no PENDING order with that id belongs to the user.
        """
        if not self._transition(order_id, ORDER_PENDING, ORDER_CANCELLED, Order.user_id == user_id):
            raise NotFoundError("Pending order not found")

    # -- queries -----------------------------------------------------------

    def get(self, order_id: int) -> Optional[Order]:
        return self.session.get(Order, order_id)

    def get_for_user(self, order_id: int, user_id: int) -> Order:
        order = self.session.query(Order).filter_by(id=order_id, user_id=user_id).first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def history(self, user_id: int, page: int, limit: int):
        query = (
            self.session.query(Order)
            .filter_by(user_id=user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return paginate(query, page, limit)

    def list_all(self, status: Optional[str], page: int, limit: int):
        query = self.session.query(Order)
        if status and status in VALID_ORDER_STATUSES:
            query = query.filter(Order.status == status)
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
        return paginate(query, page, limit)
