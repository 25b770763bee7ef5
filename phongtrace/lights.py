"""
Point light sources for Phong shading.

Each light carries separate ambient, diffuse and specular intensities
which are multiplied component-wise with the matching material terms.
"""

from __future__ import annotations
from dataclasses import dataclass

from .vec3 import Point3
from .color import Color


@dataclass(frozen=True)
class Light:
    """A point light.

    Point lights emit light equally in all directions from a single point
    without distance falloff. They produce hard shadows.
    """
    position: Point3
    ambient: Color
    diffuse: Color
    specular: Color

    @classmethod
    def white(cls, position: Point3, intensity: float = 1.0, ambient: float = 0.1) -> Light:
        """Create a white light.

        Args:
            position: Position of the light
            intensity: Diffuse and specular brightness
            ambient: Ambient brightness
        """
        return cls(
            position=position,
            ambient=Color(ambient, ambient, ambient, 1.0),
            diffuse=Color(intensity, intensity, intensity, 1.0),
            specular=Color(intensity, intensity, intensity, 1.0),
        )
