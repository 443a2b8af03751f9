"""
Vehicle segment classification.

Modules:
    segment_classifier: Anthropic-backed classifier (SegmentClassifier)
    sweep: Out-of-band pass over models without a segment
"""

__all__ = [
    "SegmentClassifier",
    "ClassificationResult",
    "classify_pending_models",
]
