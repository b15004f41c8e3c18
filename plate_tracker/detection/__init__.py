"""
Detection module - Plate localisation, contour analysis and corner selection.
"""

from .shape_classifier import ShapeClassifier
from .contour_analyzer import ContourAnalyzer, ShapeType
from .feature_selector import FeatureSelector

__all__ = [
    'ShapeClassifier',
    'ContourAnalyzer',
    'ShapeType',
    'FeatureSelector',
]
