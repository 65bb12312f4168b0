"""Ranks output probabilities against a model's labels."""

from typing import List, Optional, Sequence

from ..errors import BoundsError
from ..schemas import LabelResult


def rank(
    labels: Sequence[str],
    probabilities: Sequence[float],
    top_n: Optional[int] = None,
) -> List[LabelResult]:
    """Return the ``top_n`` most probable labels, highest first.

    Labels and probabilities are paired by index up to the shorter of the
    two; extra probabilities are ignored. Equal probabilities keep label
    order. ``top_n=None`` returns every paired label.

    Raises
    - ValueError: ``top_n`` is smaller than 1
    - BoundsError: ``top_n`` exceeds the number of paired labels
    """
    if top_n is not None and top_n < 1:
        raise ValueError(f"top_n must be a positive integer, got {top_n}")

    paired = [
        LabelResult(label=label, probability=float(probability))
        for label, probability in zip(labels, probabilities)
    ]
    # sorted() is stable, ties keep label order
    ranked = sorted(paired, key=lambda result: result.probability, reverse=True)

    if top_n is None:
        return ranked
    if top_n > len(ranked):
        raise BoundsError(top_n, len(ranked))
    return ranked[:top_n]
