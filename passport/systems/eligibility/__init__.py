"""
Passport — Eligibility

Balance-threshold checks for claiming and third-party revocation.
"""

from passport.systems.eligibility.evaluator import EligibilityEvaluator

__all__ = ["EligibilityEvaluator"]
