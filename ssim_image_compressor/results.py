# results.py
"""
Requests, attempts and terminal outcomes of a quality search.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class CompressionRequest:
    """
    A single image to bring under `ceiling` bytes.

    `tolerance` widens acceptance to ceiling * (1 + tolerance). A
    `similarity_floor` of None disables the SSIM gate.
    """
    source: bytes = field(repr=False)
    ceiling: int
    min_quality: int = 1
    max_quality: int = 95
    similarity_floor: Optional[float] = None
    tolerance: float = 0.0

    def __post_init__(self):
        validate_search_args(self.ceiling, self.min_quality, self.max_quality, self.tolerance)
        if self.similarity_floor is not None and not 0.0 <= self.similarity_floor <= 1.0:
            raise ValueError(f"similarity_floor must be within 0..1, got {self.similarity_floor}")

    @property
    def accepted_ceiling(self) -> float:
        return accepted_ceiling(self.ceiling, self.tolerance)


def accepted_ceiling(ceiling: int, tolerance: float) -> float:
    return ceiling * (1.0 + tolerance)


def validate_search_args(ceiling: int, min_quality: int, max_quality: int, tolerance: float):
    if ceiling <= 0:
        raise ValueError(f"ceiling must be positive, got {ceiling}")
    if not 1 <= min_quality <= max_quality <= 100:
        raise ValueError(
            f"quality bounds must satisfy 1 <= min <= max <= 100, got [{min_quality}..{max_quality}]"
        )
    if tolerance < 0:
        raise ValueError(f"tolerance must be >= 0, got {tolerance}")


@dataclass(frozen=True)
class CompressionAttempt:
    quality: int
    size: int
    similarity: Optional[float] = None


@dataclass(frozen=True)
class Satisfied:
    """
    Accepted output. `quality` is None when the input already fit and was
    kept as is; `unmet` names the constraints a relaxed acceptance missed.
    """
    quality: Optional[int]
    size: int
    data: bytes = field(repr=False)
    similarity: Optional[float] = None
    attempts: Tuple[CompressionAttempt, ...] = ()
    unmet: Tuple[str, ...] = ()

    satisfied = True

    @property
    def passthrough(self) -> bool:
        return self.quality is None

    @property
    def relaxed(self) -> bool:
        return bool(self.unmet)


@dataclass(frozen=True)
class Unsatisfiable:
    """No probed quality met the constraints; the original must be copied."""
    attempts: Tuple[CompressionAttempt, ...] = ()

    satisfied = False


CompressionResult = Union[Satisfied, Unsatisfiable]
