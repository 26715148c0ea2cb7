"""Domain entities (data-only structures) used across services."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, List, Any, Dict

import numpy as np


class ChangeCategory(str, Enum):
    WIRING = "WIRING"
    EQUIPMENT = "EQUIPMENT"
    AREA = "AREA"
    TEXT = "TEXT"


class ChangeKind(str, Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    MODIFIED = "MODIFIED"
    MOVED = "MOVED"


class AnalysisMode(str, Enum):
    """Detection mode. ELECTRICAL and CUSTOM are analyzed as MICRO."""
    MACRO = "MACRO"
    MICRO = "MICRO"
    ELECTRICAL = "ELECTRICAL"
    CUSTOM = "CUSTOM"

    @property
    def effective(self) -> "AnalysisMode":
        return AnalysisMode.MACRO if self is AnalysisMode.MACRO else AnalysisMode.MICRO

    @classmethod
    def parse(cls, value: Any) -> "AnalysisMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unknown analysis mode: {value!r}") from None


class BlendMode(str, Enum):
    DIFFERENCE = "difference"
    MULTIPLY = "multiply"


@dataclass(frozen=True, slots=True)
class RasterImage:
    """Decoded BGR pixel buffer with known dimensions."""
    pixels: np.ndarray  # uint8, HxWx3 (BGR)
    width: int
    height: int
    source: Optional[str] = None

    @classmethod
    def from_array(cls, pixels: np.ndarray, source: Optional[str] = None) -> "RasterImage":
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Expected HxWx3 array, got shape {pixels.shape}")
        frozen = np.ascontiguousarray(pixels, dtype=np.uint8)
        if frozen is pixels:
            frozen = pixels.copy()
        frozen.flags.writeable = False
        height, width = frozen.shape[:2]
        return cls(pixels=frozen, width=width, height=height, source=source)


@dataclass(frozen=True, slots=True)
class AffineAlignment:
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    rotation: float = 0.0  # degrees, about the overlay's own center
    opacity: float = 0.5   # visual composition only

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AffineAlignment":
        return cls(**{k: float(data[k]) for k in ("x", "y", "scale", "rotation", "opacity") if k in data})


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle in "before"-image pixel space."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Rect size must be non-negative, got {self.width}x{self.height}")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.right, self.bottom)

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "Rect":
        return cls(x1, y1, max(0, x2 - x1), max(0, y2 - y1))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class ChangeCandidate:
    """One labeled change reported for a single tile, in global coordinates."""
    title: str
    description: str
    category: ChangeCategory
    change_kind: ChangeKind
    box: Rect
    moved_from: Optional[Point] = None


@dataclass(frozen=True, slots=True)
class DiffItem:
    sequential_id: int
    display_id: str
    box: Rect
    area_size: float
    change_kind: ChangeKind
    category: ChangeCategory
    title: str
    description: str
    moved_from: Optional[Point] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.sequential_id,
            "displayId": self.display_id,
            "type": self.change_kind.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "box": self.box.to_dict(),
            "areaSize": self.area_size,
        }
        if self.moved_from is not None:
            data["movedFrom"] = {"x": self.moved_from.x, "y": self.moved_from.y}
        return data


@dataclass(slots=True)
class AnnotationResponse:
    """Raw reply of one annotation call: unvalidated items plus token usage."""
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    tokens_used: int = 0


@dataclass(slots=True)
class AnnotationBatchResult:
    candidates: List[ChangeCandidate] = field(default_factory=list)
    tokens_used: int = 0


@dataclass(slots=True)
class AnalysisResult:
    items: List[DiffItem]
    total_tokens: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "totalTokens": self.total_tokens,
        }
