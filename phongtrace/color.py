"""
RGBA color values.

Colors accumulate additively across lights without clamping; clamping
and quantization only happen when an image is written out.
"""

from __future__ import annotations
from typing import Tuple, Union
import numpy as np


class Color:
    """A four-component (RGB + alpha) color."""

    __slots__ = ('_data',)

    def __init__(self, r: float = 0.0, g: float = 0.0, b: float = 0.0, a: float = 1.0):
        self._data = np.array([r, g, b, a], dtype=np.float64)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> Color:
        c = cls.__new__(cls)
        c._data = np.asarray(arr, dtype=np.float64)
        return c

    @classmethod
    def black(cls) -> Color:
        """Fully transparent black, the seed for light accumulation."""
        return cls(0.0, 0.0, 0.0, 0.0)

    @property
    def r(self) -> float:
        return float(self._data[0])

    @property
    def g(self) -> float:
        return float(self._data[1])

    @property
    def b(self) -> float:
        return float(self._data[2])

    @property
    def a(self) -> float:
        return float(self._data[3])

    def __repr__(self) -> str:
        return f"Color({self.r:.4f}, {self.g:.4f}, {self.b:.4f}, {self.a:.4f})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Color):
            return NotImplemented
        return np.allclose(self._data, other._data)

    def __hash__(self) -> int:
        return hash(tuple(self._data))

    def __add__(self, other: Color) -> Color:
        return Color.from_array(self._data + other._data)

    def __mul__(self, other: Union[Color, float]) -> Color:
        if isinstance(other, Color):
            return Color.from_array(self._data * other._data)
        return Color.from_array(self._data * other)

    def __rmul__(self, other: float) -> Color:
        return Color.from_array(other * self._data)

    def brightness(self) -> float:
        """Mean of the RGB channels."""
        return float(np.mean(self._data[:3]))

    def clamp(self, min_val: float = 0.0, max_val: float = 1.0) -> Color:
        """Clamp all components to the given range."""
        return Color.from_array(np.clip(self._data, min_val, max_val))

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return tuple(float(c) for c in self._data)

    def to_array(self) -> np.ndarray:
        """Return the underlying numpy array (copy)."""
        return self._data.copy()
