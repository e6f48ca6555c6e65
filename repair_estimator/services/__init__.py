"""
Services for the Repair Price Estimator.

- pricing: quote line and appraisal pricing
- workflow: quote lifecycle, ids and work queues
"""

from repair_estimator.services.pricing import PricingEngine
from repair_estimator.services.workflow import WorkflowService

__all__ = ["PricingEngine", "WorkflowService"]
