"""Matching module for fingerscan

This module contains:
- cosine_similarity: zero-safe cosine of two vectors
- Matcher: weighted orientation/texture similarity with a closed decision bound
- match_best: identity-level decision (maximum over an identity's references)

"""

from __future__ import annotations
from typing import List, Optional, Sequence
import numpy as np

from fingerscan.config import DEFAULT_MATCHING, MatchSettings
from fingerscan.exceptions import InvalidFeatureVectorError
from fingerscan.logger import get_logger
from fingerscan.models import FeatureVector, MatchResult

logger = get_logger("matching")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between two vectors (0.0 if either has zero norm).

    Raises:
        InvalidFeatureVectorError: If the vectors differ in length
    """
    if a.shape != b.shape:
        raise InvalidFeatureVectorError(f"Vector length mismatch: {a.shape} vs {b.shape}")
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


class Matcher:
    """Compares FeatureVectors.

    similarity = orientation_weight * cos(orientation) + texture_weight * cos(texture),
    clipped to [0, 1]; a pair matches when similarity >= threshold.
    The score is symmetric in its arguments.
    """

    def __init__(self, settings: Optional[MatchSettings] = None) -> None:
        self.settings = settings or DEFAULT_MATCHING

    def similarity(self, probe: FeatureVector, reference: FeatureVector) -> float:
        return self.match(probe, reference).similarity_score

    def match(self, probe: FeatureVector, reference: FeatureVector) -> MatchResult:
        """Compare a probe against one reference.

        Args:
            probe: Probe feature vector
            reference: Reference feature vector

        Returns:
            MatchResult with similarity, decision and per-component cosines

        Raises:
            InvalidFeatureVectorError: If the sub-vector lengths differ
        """
        orientation = cosine_similarity(probe.orientation_histogram, reference.orientation_histogram)
        texture = cosine_similarity(probe.texture_vector, reference.texture_vector)
        similarity = (self.settings.orientation_weight * orientation
                      + self.settings.texture_weight * texture)
        return MatchResult.from_similarity(similarity, self.settings.threshold, orientation, texture)

    def match_all(self, probe: FeatureVector, references: Sequence[FeatureVector]) -> List[MatchResult]:
        return [self.match(probe, reference) for reference in references]

    def match_best(self, probe: FeatureVector, references: Sequence[FeatureVector]) -> MatchResult:
        """Best match over several references of the same identity.

        Args:
            probe: Probe feature vector
            references: Reference vectors of one identity

        Returns:
            MatchResult with the maximum similarity (a zero-similarity non-match
            if there are no references)
        """
        results = self.match_all(probe, references)
        if not results:
            return MatchResult.from_similarity(0.0, self.settings.threshold)
        best = max(results, key=lambda r: r.similarity_score)
        logger.debug(
            f"Best of {len(results)} references: {best.similarity_score:.4f} "
            f"({'MATCH' if best.is_match else 'NO MATCH'})"
        )
        return best


def match(probe: FeatureVector, reference: FeatureVector, settings: MatchSettings = None) -> MatchResult:
    """Compare two feature vectors with the given (or default) settings."""
    return Matcher(settings).match(probe, reference)


def match_best(probe: FeatureVector, references: Sequence[FeatureVector],
               settings: MatchSettings = None) -> MatchResult:
    """Maximum-similarity match of a probe over an identity's references."""
    return Matcher(settings).match_best(probe, references)
