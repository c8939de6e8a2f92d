"""Recomendaciones adaptativas."""

from .advisor import Recommendation, RecommendationAdvisor

__all__ = ["Recommendation", "RecommendationAdvisor"]
