"""
Geometric shapes for the ray tracer.

Each shape implements the Geometry interface with an `intersect` method
and declares its SurfaceKind, which the shading and shadow code use to
pick the right lighting policy.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Iterable, Iterator, Optional, Tuple
import math

import numpy as np

from .vec3 import Vec3, Point3, ComputationError
from .ray import Ray
from .materials import Material
from .lights import Light


class SurfaceKind(Enum):
    """Lighting policy of a geometry.

    SURFACE geometries cast and receive hard shadows, VOLUMETRIC ones are
    always fully lit and never block light.
    """
    SURFACE = "surface"
    VOLUMETRIC = "volumetric"


@dataclass(frozen=True)
class Intersection:
    """Result of testing a ray against one geometry.

    Attributes:
        valid: The ray's line meets the geometry at all
        visible: The hit lies inside the requested distance range
        t: The ray parameter at the hit
        position: The hit point in world space
        normal: Unit surface normal at the hit point
        geometry: The geometry that was hit
        material: The material at the hit point

    When `valid` is False no other field is meaningful.
    """
    valid: bool
    visible: bool = False
    t: float = 0.0
    position: Optional[Point3] = None
    normal: Optional[Vec3] = None
    geometry: Optional['Geometry'] = None
    material: Optional[Material] = None

    NONE: ClassVar['Intersection']

    @property
    def is_hit(self) -> bool:
        return self.valid and self.visible


Intersection.NONE = Intersection(valid=False)


class Geometry(ABC):
    """Abstract base class for all objects that can be hit by rays."""

    kind: SurfaceKind = SurfaceKind.SURFACE
    material: Optional[Material] = None

    @abstractmethod
    def intersect(self, ray: Ray, min_dist: float, max_dist: float) -> Intersection:
        """Test if ray intersects this object.

        Args:
            ray: The ray to test
            min_dist: Minimum t value to consider
            max_dist: Maximum t value to consider

        Returns:
            The nearest Intersection, or Intersection.NONE
        """
        pass


class Ellipsoid(Geometry):
    """An axis-aligned ellipsoid.

    Points p on the surface satisfy
    sum(((p - center)_k / semi_axes_k)^2) = radius^2,
    so semi axes (1, 1, 1) give a sphere of the given radius.
    """

    kind = SurfaceKind.SURFACE

    def __init__(self, center: Point3, semi_axes: Vec3, radius: float, material: Material):
        """Create an ellipsoid.

        Args:
            center: Center point of the ellipsoid
            semi_axes: Per-axis stretch factors (all positive)
            radius: Overall scale of the surface
            material: Material for shading
        """
        if min(semi_axes) <= 0:
            raise ValueError(f"Semi axes must be positive, got {semi_axes}")
        if radius <= 0:
            raise ValueError(f"Radius must be positive, got {radius}")
        self.center = center
        self.semi_axes = semi_axes
        self.radius = radius
        self.material = material
        self._inv_sq = 1.0 / (semi_axes.to_array() ** 2)

    @classmethod
    def sphere(cls, center: Point3, radius: float, material: Material) -> Ellipsoid:
        return cls(center, Vec3(1, 1, 1), radius, material)

    def intersect(self, ray: Ray, min_dist: float, max_dist: float) -> Intersection:
        """Solve the ellipsoid quadratic a*t^2 + b*t + c = 0 along the ray.

        The nearer root wins when it lies in [min_dist, max_dist], otherwise
        the farther one. A line that touches the surface only outside the
        range yields a valid but invisible intersection.
        """
        oc = ray.origin.to_array() - self.center.to_array()
        d = ray.direction.to_array()

        a = float(np.sum(d * d * self._inv_sq))
        if a == 0:
            raise ComputationError("Ray direction has zero length")
        b = 2.0 * float(np.sum(oc * d * self._inv_sq))
        c = float(np.sum(oc * oc * self._inv_sq)) - self.radius * self.radius

        discriminant = b * b - 4.0 * a * c
        if discriminant < 0:
            return Intersection.NONE

        sqrtd = math.sqrt(discriminant)
        t1 = (-b - sqrtd) / (2.0 * a)
        t2 = (-b + sqrtd) / (2.0 * a)

        if min_dist <= t1 <= max_dist:
            t, visible = t1, True
        elif min_dist <= t2 <= max_dist:
            t, visible = t2, True
        else:
            t, visible = t1, False

        point = ray.at(t)
        return Intersection(
            valid=True,
            visible=visible,
            t=t,
            position=point,
            normal=self.normal_at(point),
            geometry=self,
            material=self.material,
        )

    def normal_at(self, point: Point3) -> Vec3:
        """Outward unit normal: the normalized gradient of the implicit surface."""
        gradient = 2.0 * (point.to_array() - self.center.to_array()) * self._inv_sq
        return Vec3.from_array(gradient).normalize()

    def __repr__(self) -> str:
        return f"Ellipsoid(center={self.center}, semi_axes={self.semi_axes}, radius={self.radius})"


@dataclass(frozen=True)
class Scene:
    """Read-only snapshot of everything a render call looks at.

    Geometry order only matters for exact ties in hit distance, where
    the earlier geometry wins.
    """
    geometries: Tuple[Geometry, ...] = ()
    lights: Tuple[Light, ...] = ()

    def __init__(self, geometries: Iterable[Geometry] = (), lights: Iterable[Light] = ()):
        object.__setattr__(self, 'geometries', tuple(geometries))
        object.__setattr__(self, 'lights', tuple(lights))

    def surfaces(self) -> Iterator[Geometry]:
        """Geometries that take part in shadowing."""
        return (g for g in self.geometries if g.kind is SurfaceKind.SURFACE)

    def __len__(self) -> int:
        return len(self.geometries)

    def __iter__(self):
        return iter(self.geometries)
