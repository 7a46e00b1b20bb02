"""Synthetic data generators."""

from payplan.generators.documents import SHAPES, SubjectDocumentGenerator

__all__ = ["SHAPES", "SubjectDocumentGenerator"]
