# backend/modules/forecasting/services/accuracy_service.py

"""
Accuracy tracking for stored predictions.

Once a prediction's hour has passed, the orders actually fulfilled in that
hour are compared item by item with what was predicted. The resulting
score is written onto the prediction exactly once.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from modules.orders.enums.order_enums import FULFILLED_ORDER_STATUSES
from ..config.forecast_config import get_forecast_config
from ..exceptions import TransientStoreError
from ..models.forecast_models import Prediction
from ..utils.pacing import ThrottlePolicy
from ..utils.time_utils import local_now
from .order_source import OrderSource

logger = logging.getLogger(__name__)


def item_accuracy(predicted: float, actual: float) -> float:
    """Symmetric relative accuracy, floored at 0 and guarded for 0/0."""
    return max(0.0, 1 - abs(predicted - actual) / max(predicted, actual, 1))


def prediction_accuracy(predicted: Dict[int, int], actual: Dict[int, int]) -> float:
    """
    Mean item accuracy over the predicted items.

    A prediction without items is perfect when nothing was sold and wrong
    otherwise.
    """
    if not predicted:
        return 1.0 if not any(actual.values()) else 0.0
    scores = [
        item_accuracy(quantity, actual.get(menu_item_id, 0))
        for menu_item_id, quantity in predicted.items()
    ]
    return sum(scores) / len(scores)


@dataclass
class AccuracyRunResult:
    candidates: int = 0
    scored: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


class AccuracyTrackingService:
    """Scores past predictions against realized orders"""

    def __init__(
        self,
        db: Session,
        order_source: Optional[OrderSource] = None,
        fulfilled_statuses: Optional[Iterable[Any]] = None
    ):
        self.db = db
        self.order_source = order_source or OrderSource(db)
        self.fulfilled_statuses = tuple(fulfilled_statuses or FULFILLED_ORDER_STATUSES)
        self.config = get_forecast_config()

    def find_candidates(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[Prediction]:
        """
        Unscored predictions whose hour started between the configured
        minimum and maximum age (1-3 hours by default), oldest first.
        """
        now = now or local_now()
        earliest = now - timedelta(hours=self.config.ACCURACY_MAX_AGE_HOURS)
        latest = now - timedelta(hours=self.config.ACCURACY_MIN_AGE_HOURS)

        try:
            rows = (
                self.db.query(Prediction)
                .options(selectinload(Prediction.items))
                .filter(
                    Prediction.accuracy.is_(None),
                    Prediction.prediction_for >= earliest.date(),
                    Prediction.prediction_for <= latest.date()
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise TransientStoreError("find_accuracy_candidates", str(e)) from e

        candidates = [p for p in rows if earliest <= p.window_start <= latest]
        candidates.sort(key=lambda p: p.window_start)
        if limit is not None:
            candidates = candidates[:limit]
        return candidates

    def actual_quantities(self, prediction: Prediction) -> Dict[int, int]:
        """Fulfilled quantities per menu item inside the prediction's hour."""
        orders = self.order_source.orders_between(
            prediction.window_start, prediction.window_end, statuses=self.fulfilled_statuses
        )
        actual: Dict[int, int] = {}
        for order in orders:
            for line in order.lines:
                actual[line.menu_item_id] = actual.get(line.menu_item_id, 0) + line.quantity
        return actual

    def score_prediction(self, prediction: Prediction, now: Optional[datetime] = None) -> float:
        """
        Compute and persist the accuracy of one prediction.

        An already scored prediction is returned unchanged.
        """
        if prediction.accuracy is not None:
            return prediction.accuracy

        actual = self.actual_quantities(prediction)
        predicted = {item.menu_item_id: item.predicted_quantity or 0 for item in prediction.items}
        accuracy = prediction_accuracy(predicted, actual)

        try:
            prediction.accuracy = accuracy
            prediction.scored_at = now or local_now()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError("save_prediction_accuracy", str(e)) from e

        logger.info(
            f"Prediction {prediction.id} ({prediction.prediction_for} {prediction.hour:02d}:00) "
            f"accuracy {accuracy * 100:.2f}%"
        )
        return accuracy

    async def update_accuracy_metrics(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
        pacing: Optional[ThrottlePolicy] = None
    ) -> AccuracyRunResult:
        """
        Score a batch of eligible predictions sequentially.

        A failure on one prediction is logged and recorded in the result;
        the remaining predictions are still scored.
        """
        now = now or local_now()
        limit = limit if limit is not None else self.config.ACCURACY_BATCH_SIZE
        pacing = pacing or ThrottlePolicy(self.config.ACCURACY_DELAY_SECONDS)

        candidates = self.find_candidates(now=now, limit=limit)
        result = AccuracyRunResult(candidates=len(candidates))

        for index, prediction in enumerate(candidates):
            if index > 0:
                await pacing.pause()
            prediction_id = prediction.id
            context = f"accuracy:{prediction.prediction_for} {prediction.hour:02d}:00"
            try:
                self.score_prediction(prediction, now=now)
                result.scored += 1
            except Exception as e:
                result.failed += 1
                result.errors.append({
                    "prediction_id": prediction_id,
                    "message": str(e),
                    "context": context,
                })
                logger.error(f"Failed to score prediction {prediction_id}: {e}")

        logger.info(
            f"Accuracy update finished: {result.scored} scored, {result.failed} failed "
            f"of {result.candidates} candidates"
        )
        return result
