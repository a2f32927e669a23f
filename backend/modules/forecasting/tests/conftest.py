# backend/modules/forecasting/tests/conftest.py

import pytest
from datetime import date, datetime, timedelta
from sqlalchemy.orm import Session

from core.database import Base, engine, SessionLocal
from core.menu_models import MenuItem
from modules.orders.models.order_models import Order, OrderItem
from modules.forecasting.models.forecast_models import (
    HistoricalBucket, BucketItemTotal, Prediction, PredictionItem
)
from modules.forecasting.services.external_factors import (
    FixedWeatherProvider, StaticHolidayCalendar
)


# Monday 2024-03-04; every test clock is expressed relative to it
REFERENCE_NOW = datetime(2024, 3, 4, 10, 20)


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory engine"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def weather_provider():
    return FixedWeatherProvider(condition="cloudy", temperature=25, humidity=60)


@pytest.fixture
def holiday_calendar():
    return StaticHolidayCalendar()


@pytest.fixture
def menu_items(db_session: Session):
    """Create a small menu"""
    items = [
        MenuItem(name="Masala Dosa", category="Mains", price=120.0),
        MenuItem(name="Paneer Tikka", category="Starters", price=180.0),
        MenuItem(name="Filter Coffee", category="Beverages", price=40.0),
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


def make_order(
    db_session: Session,
    created_at: datetime,
    lines,
    status: str = "completed"
) -> Order:
    """Persist an order with (menu_item, quantity) lines at the item's menu price"""
    order = Order(
        status=status,
        created_at=created_at,
        updated_at=created_at,
        total_amount=sum(item.price * quantity for item, quantity in lines),
    )
    for item, quantity in lines:
        order.order_items.append(OrderItem(
            menu_item_id=item.id,
            quantity=quantity,
            price=item.price,
            created_at=created_at,
            updated_at=created_at,
        ))
    db_session.add(order)
    db_session.commit()
    return order


def make_bucket(
    db_session: Session,
    bucket_date: date,
    hour: int,
    quantities,
    order_count: int = 1,
    revenue: float = 0.0
) -> HistoricalBucket:
    """Persist a historical bucket with {menu_item_id: quantity} totals"""
    bucket = HistoricalBucket(
        bucket_date=bucket_date,
        hour=hour,
        day_of_week=bucket_date.weekday(),
        total_order_count=order_count,
        total_revenue=revenue,
    )
    for menu_item_id, quantity in quantities.items():
        bucket.item_totals.append(
            BucketItemTotal(menu_item_id=menu_item_id, quantity=quantity, revenue=0.0)
        )
    db_session.add(bucket)
    db_session.commit()
    return bucket


def make_prediction(
    db_session: Session,
    prediction_for: date,
    hour: int,
    quantities=None,
    accuracy=None
) -> Prediction:
    """Persist a prediction with {menu_item_id: predicted_quantity} items"""
    quantities = quantities or {}
    prediction = Prediction(
        prediction_for=prediction_for,
        hour=hour,
        total_predicted_orders=sum(quantities.values()),
        total_predicted_revenue=0.0,
        accuracy=accuracy,
    )
    for position, (menu_item_id, quantity) in enumerate(quantities.items()):
        prediction.items.append(PredictionItem(
            position=position,
            menu_item_id=menu_item_id,
            predicted_quantity=quantity,
            confidence=0.5,
            factors=[],
        ))
    db_session.add(prediction)
    db_session.commit()
    return prediction


@pytest.fixture
def order_factory(db_session: Session):
    def factory(created_at, lines, status="completed"):
        return make_order(db_session, created_at, lines, status)
    return factory


@pytest.fixture
def bucket_factory(db_session: Session):
    def factory(bucket_date, hour, quantities, order_count=1, revenue=0.0):
        return make_bucket(db_session, bucket_date, hour, quantities, order_count, revenue)
    return factory


@pytest.fixture
def prediction_factory(db_session: Session):
    def factory(prediction_for, hour, quantities=None, accuracy=None):
        return make_prediction(db_session, prediction_for, hour, quantities, accuracy)
    return factory


@pytest.fixture
def weekly_history(menu_items, order_factory):
    """
    Three Mondays of lunch orders at 13:00 before REFERENCE_NOW.

    Dosa quantities 10, 12, 11 and one coffee on the middle Monday.
    """
    dosa, _, coffee = menu_items
    mondays = [REFERENCE_NOW.date() - timedelta(days=7 * weeks) for weeks in (3, 2, 1)]
    order_factory(datetime.combine(mondays[0], datetime.min.time()).replace(hour=13, minute=5),
                  [(dosa, 10)])
    order_factory(datetime.combine(mondays[1], datetime.min.time()).replace(hour=13, minute=10),
                  [(dosa, 12), (coffee, 1)])
    order_factory(datetime.combine(mondays[2], datetime.min.time()).replace(hour=13, minute=45),
                  [(dosa, 11)])
    return mondays


@pytest.fixture
def reference_now():
    return REFERENCE_NOW
