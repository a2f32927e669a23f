# backend/modules/forecasting/tests/test_forecast_router.py

"""
API tests for the forecasting router.
"""

import pytest
from datetime import date, timedelta
from fastapi.testclient import TestClient
from unittest.mock import patch

from core.database import SessionLocal
from app.main import app
from modules.forecasting.exceptions import TransientStoreError
from modules.forecasting.services.external_factors import FixedWeatherProvider
from modules.forecasting.tasks.forecast_scheduler import ForecastScheduler
from modules.forecasting.utils.pacing import NO_THROTTLE
from modules.forecasting.utils.time_utils import local_now, truncate_to_hour

API = "/api/v1/forecasting"


@pytest.fixture
def scheduler(db_session):
    return ForecastScheduler(
        session_factory=SessionLocal,
        weather_provider=FixedWeatherProvider(),
        generation_pacing=NO_THROTTLE,
        accuracy_pacing=NO_THROTTLE
    )


@pytest.fixture
def client(db_session, scheduler):
    app.state.forecast_scheduler = scheduler
    try:
        yield TestClient(app)
    finally:
        del app.state.forecast_scheduler


class TestForecastRouter:

    def test_train_without_orders(self, client):
        response = client.post(f"{API}/train")

        assert response.status_code == 200
        assert response.json() == {"buckets_produced": 0, "lookback_days": 90}

    def test_train_with_custom_lookback(self, client, menu_items, order_factory):
        order_factory(local_now() - timedelta(days=2), [(menu_items[0], 2)])

        response = client.post(f"{API}/train", json={"lookback_days": 7})

        assert response.status_code == 200
        assert response.json() == {"buckets_produced": 1, "lookback_days": 7}

    def test_generate_prediction(self, client, menu_items, bucket_factory):
        dosa = menu_items[0]
        bucket_factory(date(2024, 3, 4), 13, {dosa.id: 6}, order_count=2, revenue=720.0)

        response = client.post(f"{API}/generate", json={"date": "2024-03-11", "hour": 13})

        assert response.status_code == 201
        body = response.json()
        assert body["prediction_for"] == "2024-03-11"
        assert body["hour"] == 13
        assert body["accuracy"] is None
        item = body["items"][0]
        assert item["menu_item_id"] == dosa.id
        assert item["name"] == "Masala Dosa"
        assert item["category"] == "Mains"
        assert item["predicted_quantity"] >= 0
        assert 0.1 <= item["confidence"] <= 0.95
        assert len(item["factors"]) == 4

    def test_generate_conflict(self, client, bucket_factory):
        bucket_factory(date(2024, 3, 4), 13, {1: 6})
        client.post(f"{API}/generate", json={"date": "2024-03-11", "hour": 13})

        response = client.post(f"{API}/generate", json={"date": "2024-03-11", "hour": 13})

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "PREDICTION_EXISTS"

    def test_generate_without_history(self, client):
        response = client.post(f"{API}/generate", json={"date": "2024-03-11", "hour": 13})

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "INSUFFICIENT_DATA"

    def test_generate_invalid_hour(self, client):
        response = client.post(f"{API}/generate", json={"date": "2024-03-11", "hour": 24})

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_store_failure_maps_to_503(self, client):
        with patch(
            "modules.forecasting.routers.forecast_router.PredictionService.system_status",
            side_effect=TransientStoreError("system_status", "locked")
        ):
            response = client.get(f"{API}/status")

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "STORE_UNAVAILABLE"

    def test_current_prediction_with_menu_details(self, client, menu_items, prediction_factory):
        dosa = menu_items[0]
        current = truncate_to_hour(local_now())
        stored = prediction_factory(current.date(), current.hour, {dosa.id: 3})

        response = client.get(f"{API}/current")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == stored.id
        assert body["items"][0]["name"] == "Masala Dosa"
        assert body["items"][0]["price"] == 120.0

    def test_current_prediction_generated_on_demand(self, client, bucket_factory):
        current = truncate_to_hour(local_now())
        bucket_factory(current.date() - timedelta(days=7), current.hour, {1: 5})

        response = client.get(f"{API}/current")

        assert response.status_code == 200
        assert response.json()["hour"] == current.hour
        assert response.json()["prediction_for"] == current.date().isoformat()

    def test_current_prediction_without_history(self, client):
        response = client.get(f"{API}/current")

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "INSUFFICIENT_DATA"

    def test_prediction_history(self, client, prediction_factory):
        prediction_factory(date(2024, 3, 1), 12, {1: 1})
        prediction_factory(date(2024, 3, 2), 8, {1: 1})
        prediction_factory(date(2024, 3, 2), 19, {1: 1})

        response = client.get(f"{API}/all", params={"limit": 2})

        assert response.status_code == 200
        assert [(p["prediction_for"], p["hour"]) for p in response.json()] == [
            ("2024-03-02", 19), ("2024-03-02", 8)
        ]

    def test_upcoming(self, client, prediction_factory):
        next_hour = truncate_to_hour(local_now()) + timedelta(hours=1)
        prediction_factory(next_hour.date(), next_hour.hour, {1: 3})

        response = client.get(f"{API}/upcoming")

        assert response.status_code == 200
        body = response.json()
        assert body["window_hours"] == 6
        assert body["count"] == 1
        assert body["predictions"][0]["hour"] == next_hour.hour

    def test_accuracy_summary(self, client, prediction_factory):
        prediction_factory(date(2024, 3, 1), 12, {1: 1}, accuracy=0.8)

        response = client.get(f"{API}/accuracy")

        assert response.status_code == 200
        body = response.json()
        assert body["overall_accuracy"] == pytest.approx(0.8)
        assert body["hourly_accuracy"] == [{"hour": 12, "accuracy": pytest.approx(0.8), "predictions": 1}]
        assert body["recent_predictions"][0]["prediction_for"] == "2024-03-01"

    def test_status(self, client, menu_items):
        response = client.get(f"{API}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["menu_items"] == 3
        assert body["predictions"] == 0
        assert body["training"] == {"last_training_at": None, "buckets_produced": 0}
        assert body["scheduler_running"] is False

    def test_scheduler_stats_and_manual_run(self, client):
        response = client.post(f"{API}/scheduler/jobs/weekly_cleanup/run")
        assert response.status_code == 200
        assert response.json() == {"job": "weekly_cleanup", "result": {"deleted": 0}}

        stats = client.get(f"{API}/scheduler/stats").json()
        assert stats["running"] is False
        assert stats["jobs"]["weekly_cleanup"]["runs"] == 1

    def test_unknown_job(self, client):
        response = client.post(f"{API}/scheduler/jobs/defragment/run")

        assert response.status_code == 404
