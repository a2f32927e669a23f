# backend/modules/forecasting/services/order_source.py

"""
Read-only access to order history and the menu catalog.

The forecasting services only consume plain snapshots from here, never the
order ORM objects, so order persistence stays owned by the orders module.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.menu_models import MenuItem
from modules.orders.models.order_models import Order
from ..exceptions import TransientStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    menu_item_id: int
    quantity: int
    unit_price: float


@dataclass(frozen=True)
class OrderSnapshot:
    created_at: datetime
    status: str
    lines: List[OrderLine] = field(default_factory=list)


def _status_values(statuses: Iterable[Any]) -> List[str]:
    return [getattr(status, "value", status) for status in statuses]


class OrderSource:
    """Queries orders by creation-time range and status membership"""

    def __init__(self, db: Session):
        self.db = db

    def orders_between(
        self,
        start: datetime,
        end: datetime,
        statuses: Optional[Iterable[Any]] = None
    ) -> List[OrderSnapshot]:
        """Orders created in [start, end), optionally limited to a status set."""
        try:
            query = (
                self.db.query(Order)
                .options(selectinload(Order.order_items))
                .filter(Order.created_at >= start, Order.created_at < end)
            )
            if statuses is not None:
                query = query.filter(Order.status.in_(_status_values(statuses)))

            orders = query.order_by(Order.created_at).all()
        except SQLAlchemyError as e:
            raise TransientStoreError("orders_between", str(e)) from e

        return [
            OrderSnapshot(
                created_at=order.created_at,
                status=order.status,
                lines=[
                    OrderLine(
                        menu_item_id=item.menu_item_id,
                        quantity=item.quantity or 0,
                        unit_price=float(item.price or 0),
                    )
                    for item in order.order_items
                ],
            )
            for order in orders
        ]

    def count_orders_since(self, moment: Optional[datetime]) -> int:
        """Number of orders created after ``moment`` (all orders when None)."""
        try:
            query = self.db.query(func.count(Order.id))
            if moment is not None:
                query = query.filter(Order.created_at > moment)
            return query.scalar() or 0
        except SQLAlchemyError as e:
            raise TransientStoreError("count_orders_since", str(e)) from e

    def menu_item_details(self, menu_item_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        """Display details for menu items; unknown ids are omitted."""
        ids = list(set(menu_item_ids))
        if not ids:
            return {}
        try:
            items = self.db.query(MenuItem).filter(MenuItem.id.in_(ids)).all()
        except SQLAlchemyError as e:
            raise TransientStoreError("menu_item_details", str(e)) from e

        return {
            item.id: {"name": item.name, "category": item.category, "price": item.price}
            for item in items
        }

    def count_menu_items(self) -> int:
        try:
            return self.db.query(func.count(MenuItem.id)).scalar() or 0
        except SQLAlchemyError as e:
            raise TransientStoreError("count_menu_items", str(e)) from e
