"""
Volumetric mask geometry.

Renders sampled volume data (for example a segmented CT scan) as an
opaque iso-surface:
- A color map turns sample values into RGBA colors (alpha 0 = empty)
- Rays march through the volume's bounding box in fixed steps
- The first opaque sample is the hit; its normal comes from the
  gradient of the opacity field
- Volumes are always fully lit: they never cast or receive shadows
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging
import math

import numpy as np

from .vec3 import Vec3, Point3
from .color import Color
from .ray import Ray
from .materials import Material
from .shapes import Geometry, Intersection, SurfaceKind

logger = logging.getLogger(__name__)


class VolumeFormatError(Exception):
    """Error while reading a volume header or its raw samples."""
    pass


@dataclass(frozen=True)
class ColorMapEntry:
    lower: float
    upper: float
    color: Color


class ColorMap:
    """Maps sample values to colors through inclusive value intervals.

    Intervals are checked in insertion order and the first match wins.
    Values matching no interval are transparent.
    """

    def __init__(self, entries: Optional[List[ColorMapEntry]] = None):
        self.entries: List[ColorMapEntry] = list(entries) if entries else []

    @classmethod
    def threshold(cls, level: float, color: Color) -> ColorMap:
        """Every sample at or above `level` gets `color`."""
        return cls([ColorMapEntry(level, math.inf, color)])

    def add(self, lower: float, upper: float, color: Color) -> ColorMap:
        if lower > upper:
            raise ValueError(f"Empty interval [{lower}, {upper}]")
        self.entries.append(ColorMapEntry(lower, upper, color))
        return self

    def color_at(self, value: float) -> Optional[Color]:
        """Color for a single sample, or None when it is transparent."""
        for entry in self.entries:
            if entry.lower <= value <= entry.upper:
                if entry.color.a > 0:
                    return entry.color
                return None
        return None

    def opacity(self, values: np.ndarray) -> np.ndarray:
        """Alpha channel of the mapped colors for a whole sample array."""
        alpha = np.zeros(values.shape, dtype=np.float64)
        # Reverse so earlier entries overwrite later ones
        for entry in reversed(self.entries):
            mask = (values >= entry.lower) & (values <= entry.upper)
            alpha[mask] = entry.color.a
        return alpha

    def __len__(self) -> int:
        return len(self.entries)


_RAW_FORMATS = {
    'UCHAR': np.dtype(np.uint8),
    'USHORT': np.dtype('<u2'),
}


def read_dat_header(dat_path: Union[str, Path]) -> dict:
    """Parse a `.dat` volume header.

    The header is a list of `Key: value` lines naming the raw file, its
    resolution, the slice thickness per axis and the sample format.
    """
    path = Path(dat_path)
    if not path.exists():
        raise FileNotFoundError(f"Volume header not found: {dat_path}")

    fields = {}
    for line in path.read_text().splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition(':')
        if not sep:
            raise VolumeFormatError(f"Malformed header line: {line!r}")
        fields[key.strip()] = value.strip()

    try:
        resolution = tuple(int(v) for v in fields['Resolution'].split())
        thickness = tuple(float(v) for v in fields['SliceThickness'].split())
        raw_name = fields['ObjectFileName']
    except KeyError as e:
        raise VolumeFormatError(f"Missing header field {e.args[0]} in {dat_path}") from e
    except ValueError as e:
        raise VolumeFormatError(f"Bad numeric value in {dat_path}: {e}") from e

    if len(resolution) != 3 or len(thickness) != 3:
        raise VolumeFormatError("Resolution and SliceThickness need 3 components")

    sample_format = fields.get('Format', 'UCHAR').upper()
    if sample_format not in _RAW_FORMATS:
        raise VolumeFormatError(f"Unsupported sample format: {sample_format}")

    return {
        'raw_path': path.parent / raw_name,
        'resolution': resolution,
        'slice_thickness': thickness,
        'dtype': _RAW_FORMATS[sample_format],
    }


class VolumetricMask(Geometry):
    """Sampled volume data rendered as the surface of its opaque region."""

    kind = SurfaceKind.VOLUMETRIC

    def __init__(
        self,
        data: np.ndarray,
        position: Point3,
        voxel_size: Vec3,
        color_map: ColorMap,
        step: Optional[float] = None,
        shininess: float = 10.0
    ):
        """Create a volumetric mask.

        Args:
            data: Samples indexed [x, y, z]
            position: World position of the volume's lower corner
            voxel_size: World size of one voxel along each axis
            color_map: Maps sample values to colors
            step: Marching distance along the ray (default: smallest voxel edge)
            shininess: Specular exponent of every sample's material
        """
        data = np.asarray(data)
        if data.ndim != 3:
            raise ValueError(f"Volume data must be 3D, got shape {data.shape}")
        if min(voxel_size) <= 0:
            raise ValueError(f"Voxel size must be positive, got {voxel_size}")

        self.data = data
        self.position = position
        self.voxel_size = voxel_size
        # Own copy: the opacity field below is computed from it once
        self.color_map = ColorMap(color_map.entries)
        self.step = step if step is not None else min(voxel_size)
        if self.step <= 0:
            raise ValueError(f"Step must be positive, got {self.step}")
        self.shininess = shininess
        self.material = None

        self._opacity = self.color_map.opacity(data)
        self._shape = np.array(data.shape)
        self._lower = position.to_array()
        self._upper = self._lower + voxel_size.to_array() * self._shape

    @classmethod
    def load(
        cls,
        dat_path: Union[str, Path],
        position: Point3,
        scale: float,
        color_map: ColorMap,
        step: Optional[float] = None,
        shininess: float = 10.0
    ) -> VolumetricMask:
        """Load a volume from a `.dat` header and its raw sample file.

        Raw samples are stored with x varying fastest, then y, then z.
        """
        header = read_dat_header(dat_path)
        raw_path = header['raw_path']
        if not raw_path.exists():
            raise FileNotFoundError(f"Raw volume data not found: {raw_path}")

        nx, ny, nz = header['resolution']
        samples = np.fromfile(raw_path, dtype=header['dtype'])
        if samples.size != nx * ny * nz:
            raise VolumeFormatError(
                f"{raw_path} holds {samples.size} samples, expected {nx}x{ny}x{nz}"
            )
        data = samples.reshape((nz, ny, nx)).transpose(2, 1, 0)

        sx, sy, sz = header['slice_thickness']
        voxel_size = Vec3(sx * scale, sy * scale, sz * scale)
        logger.info("Loaded volume %s: %dx%dx%d samples", raw_path.name, nx, ny, nz)

        return cls(data, position, voxel_size, color_map, step, shininess)

    def _clip(self, ray: Ray) -> Optional[Tuple[float, float]]:
        """Slab test against the volume box; returns (t_near, t_far) or None."""
        origin = ray.origin.to_array()
        direction = ray.direction.to_array()
        t_near, t_far = -math.inf, math.inf

        for axis in range(3):
            if direction[axis] == 0:
                if not self._lower[axis] <= origin[axis] <= self._upper[axis]:
                    return None
                continue
            t0 = (self._lower[axis] - origin[axis]) / direction[axis]
            t1 = (self._upper[axis] - origin[axis]) / direction[axis]
            if t0 > t1:
                t0, t1 = t1, t0
            t_near = max(t_near, t0)
            t_far = min(t_far, t1)
            if t_near > t_far:
                return None

        return t_near, t_far

    def voxel_index(self, point: Point3) -> Tuple[int, int, int]:
        """Index of the voxel containing point, clamped to the grid."""
        rel = (point.to_array() - self._lower) / self.voxel_size.to_array()
        idx = np.clip(np.floor(rel).astype(int), 0, self._shape - 1)
        return int(idx[0]), int(idx[1]), int(idx[2])

    def normal_at(self, index: Tuple[int, int, int]) -> Optional[Vec3]:
        """Negative central-difference gradient of the opacity field.

        Returns None where the field is locally flat.
        """
        gradient = np.zeros(3)
        for axis in range(3):
            hi = list(index)
            lo = list(index)
            hi[axis] = min(index[axis] + 1, self._shape[axis] - 1)
            lo[axis] = max(index[axis] - 1, 0)
            gradient[axis] = (
                self._opacity[tuple(hi)] - self._opacity[tuple(lo)]
            ) / self.voxel_size[axis]

        normal = Vec3.from_array(-gradient)
        if normal.near_zero():
            return None
        return normal.normalize()

    def intersect(self, ray: Ray, min_dist: float, max_dist: float) -> Intersection:
        clipped = self._clip(ray)
        if clipped is None:
            return Intersection.NONE

        t_enter = max(clipped[0], min_dist)
        t_exit = min(clipped[1], max_dist)
        if t_enter > t_exit:
            return Intersection.NONE

        dt = self.step / ray.direction.length()
        t = t_enter
        while t <= t_exit:
            point = ray.at(t)
            index = self.voxel_index(point)
            if self._opacity[index] > 0:
                color = self.color_map.color_at(self.data[index])
                normal = self.normal_at(index)
                if normal is None:
                    normal = (-ray.direction).normalize()
                return Intersection(
                    valid=True,
                    visible=True,
                    t=t,
                    position=point,
                    normal=normal,
                    geometry=self,
                    material=Material.from_color(color, self.shininess),
                )
            t += dt

        return Intersection.NONE

    def __repr__(self) -> str:
        nx, ny, nz = self.data.shape
        return f"VolumetricMask({nx}x{ny}x{nz}, position={self.position})"
