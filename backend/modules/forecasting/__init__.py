# backend/modules/forecasting/__init__.py

"""
Forecasting Module - Menu Demand Prediction

Predicts how many units of each menu item will be ordered in a future
hour and keeps those predictions fresh.

Components:
- Aggregation: folds raw order history into per-(date, hour) buckets
- Forecasting: same weekday/same hour averaging with trend, seasonal and
  weather multipliers
- Accuracy tracking: scores past predictions against realized orders
- Scheduler: recurring generation, training, scoring, cleanup and health jobs
"""

__version__ = "1.0.0"
