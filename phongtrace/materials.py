"""
Phong materials.

A material holds the ambient, diffuse and specular reflection
coefficients of a surface together with its specular exponent.
"""

from __future__ import annotations
from dataclasses import dataclass

from .color import Color


@dataclass(frozen=True)
class Material:
    """Phong reflection coefficients.

    Attributes:
        ambient: Ambient reflection color
        diffuse: Diffuse (Lambertian) reflection color
        specular: Specular highlight color
        shininess: Specular exponent, larger values give tighter highlights
    """
    ambient: Color
    diffuse: Color
    specular: Color
    shininess: float = 1.0

    def __post_init__(self):
        if self.shininess < 0:
            raise ValueError(f"Shininess must be non-negative, got {self.shininess}")

    @classmethod
    def from_color(cls, color: Color, shininess: float = 10.0) -> Material:
        """Material reflecting the same color in all three terms."""
        return cls(color, color, color, shininess)
