# backend/modules/forecasting/tests/test_accuracy_service.py

"""
Tests for accuracy tracking.
"""

import pytest
from datetime import date, datetime
from unittest.mock import patch

from modules.forecasting.exceptions import TransientStoreError
from modules.forecasting.models.forecast_models import Prediction
from modules.forecasting.services.accuracy_service import (
    AccuracyTrackingService, item_accuracy, prediction_accuracy
)
from modules.forecasting.utils.pacing import NO_THROTTLE


class TestAccuracyFormulas:

    def test_over_prediction_scores_zero(self):
        assert item_accuracy(5, 0) == 0.0

    def test_zero_for_zero_is_perfect(self):
        assert item_accuracy(0, 0) == 1.0

    def test_partial_accuracy(self):
        assert item_accuracy(8, 10) == pytest.approx(0.8)
        assert item_accuracy(10, 8) == pytest.approx(0.8)

    def test_prediction_accuracy_is_mean_over_predicted_items(self):
        # Unpredicted items sold (id 3) do not enter the mean
        assert prediction_accuracy({1: 10, 2: 4}, {1: 10, 2: 2, 3: 9}) == pytest.approx(0.75)

    def test_empty_prediction(self):
        assert prediction_accuracy({}, {}) == 1.0
        assert prediction_accuracy({}, {1: 2}) == 0.0


class TestAccuracyTrackingService:
    """Scoring predictions against fulfilled orders"""

    @pytest.fixture
    def tracker(self, db_session):
        return AccuracyTrackingService(db_session)

    def test_scenario_single_item_nothing_sold(self, tracker, prediction_factory, reference_now):
        prediction = prediction_factory(reference_now.date(), 8, {1: 5})

        assert tracker.score_prediction(prediction, now=reference_now) == 0.0
        assert prediction.accuracy == 0.0
        assert prediction.scored_at == reference_now

    def test_scenario_zero_predicted_zero_sold(self, tracker, prediction_factory, reference_now):
        prediction = prediction_factory(reference_now.date(), 8, {1: 0})

        assert tracker.score_prediction(prediction, now=reference_now) == 1.0

    def test_only_fulfilled_orders_in_window_count(
        self, tracker, menu_items, order_factory, prediction_factory, reference_now
    ):
        dosa = menu_items[0]
        prediction = prediction_factory(reference_now.date(), 8, {dosa.id: 4})
        order_factory(datetime(2024, 3, 4, 8, 10), [(dosa, 2)], status="completed")
        order_factory(datetime(2024, 3, 4, 8, 50), [(dosa, 2)], status="served")
        order_factory(datetime(2024, 3, 4, 8, 30), [(dosa, 5)], status="cancelled")
        order_factory(datetime(2024, 3, 4, 9, 0), [(dosa, 5)], status="completed")

        assert tracker.actual_quantities(prediction) == {dosa.id: 4}
        assert tracker.score_prediction(prediction, now=reference_now) == 1.0

    def test_candidates_limited_to_age_window(self, tracker, prediction_factory, reference_now):
        today = reference_now.date()
        too_old = prediction_factory(today, 7, {1: 1})
        eligible_early = prediction_factory(today, 8, {1: 1})
        eligible_late = prediction_factory(today, 9, {1: 1})
        too_recent = prediction_factory(today, 10, {1: 1})

        candidates = tracker.find_candidates(now=reference_now)

        assert [p.id for p in candidates] == [eligible_early.id, eligible_late.id]
        assert too_old.id not in [p.id for p in candidates]
        assert too_recent.id not in [p.id for p in candidates]

    def test_scored_predictions_are_not_reselected(self, tracker, prediction_factory, reference_now):
        prediction_factory(reference_now.date(), 8, {1: 1}, accuracy=0.5)

        assert tracker.find_candidates(now=reference_now) == []

    def test_window_crossing_midnight(self, tracker, prediction_factory):
        now = datetime(2024, 3, 5, 1, 30)
        late_night = prediction_factory(date(2024, 3, 4), 23, {1: 1})

        assert [p.id for p in tracker.find_candidates(now=now)] == [late_night.id]

    @pytest.mark.asyncio
    async def test_batch_scores_each_prediction_once(
        self, tracker, db_session, prediction_factory, reference_now
    ):
        prediction_factory(reference_now.date(), 8, {1: 5})
        prediction_factory(reference_now.date(), 9, {1: 0})

        first = await tracker.update_accuracy_metrics(now=reference_now, pacing=NO_THROTTLE)
        second = await tracker.update_accuracy_metrics(now=reference_now, pacing=NO_THROTTLE)

        assert (first.candidates, first.scored, first.failed) == (2, 2, 0)
        assert (second.candidates, second.scored) == (0, 0)
        scores = {p.hour: p.accuracy for p in db_session.query(Prediction).all()}
        assert scores == {8: 0.0, 9: 1.0}

    @pytest.mark.asyncio
    async def test_batch_respects_limit(self, tracker, prediction_factory, reference_now):
        prediction_factory(reference_now.date(), 8, {1: 1})
        prediction_factory(reference_now.date(), 9, {1: 1})

        result = await tracker.update_accuracy_metrics(now=reference_now, limit=1, pacing=NO_THROTTLE)

        assert result.candidates == 1
        assert result.scored == 1

    @pytest.mark.asyncio
    async def test_failure_on_one_item_does_not_stop_batch(
        self, tracker, db_session, prediction_factory, reference_now
    ):
        failing = prediction_factory(reference_now.date(), 8, {1: 5})
        prediction_factory(reference_now.date(), 9, {1: 0})

        original = tracker.actual_quantities

        def flaky(prediction):
            if prediction.id == failing.id:
                raise TransientStoreError("orders_between", "connection reset")
            return original(prediction)

        with patch.object(tracker, "actual_quantities", side_effect=flaky):
            result = await tracker.update_accuracy_metrics(now=reference_now, pacing=NO_THROTTLE)

        assert result.scored == 1
        assert result.failed == 1
        assert result.errors[0]["prediction_id"] == failing.id
        assert result.errors[0]["context"] == "accuracy:2024-03-04 08:00"

        db_session.expire_all()
        assert db_session.get(Prediction, failing.id).accuracy is None

    def test_already_scored_prediction_is_unchanged(self, tracker, prediction_factory, reference_now):
        prediction = prediction_factory(reference_now.date(), 8, {1: 5}, accuracy=0.42)

        assert tracker.score_prediction(prediction, now=reference_now) == 0.42
        assert prediction.scored_at is None
