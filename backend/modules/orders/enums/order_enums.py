from enum import Enum


class OrderStatus(str, Enum):
    PLACED = "placed"
    PREPARING = "preparing"
    SERVED = "served"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Orders in these states count as realized demand when scoring forecasts
FULFILLED_ORDER_STATUSES = (
    OrderStatus.DELIVERED,
    OrderStatus.SERVED,
    OrderStatus.COMPLETED,
)
