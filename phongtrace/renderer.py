"""
Renderer module - the heart of the ray tracer.

Implements:
- Nearest-hit selection by linear scan over the scene
- Hard shadows through secondary rays towards each light
- Phong shading (ambient + diffuse + specular) summed over all lights
- Tile-based rendering, optionally multi-threaded
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union
import logging
import os
import threading
import time

from .vec3 import Vec3, Point3
from .color import Color
from .ray import Ray
from .camera import Camera
from .lights import Light
from .materials import Material
from .image import Image
from .shapes import Geometry, Intersection, Scene, SurfaceKind

logger = logging.getLogger(__name__)


class SelfExclusion(Enum):
    """How the shadow test recognizes the surface a point lies on.

    IDENTITY compares geometry objects. CENTER treats any surface whose
    center lies within `center_epsilon` of the owner's center as the
    owner, so near-concentric surfaces never shadow each other.
    """
    IDENTITY = "identity"
    CENTER = "center"


@dataclass
class RenderSettings:
    """Configuration for the renderer."""
    width: int = 800
    height: int = 600
    background_color: Color = None
    tile_size: int = 32
    num_threads: int = 0  # 0 = auto-detect
    self_exclusion: SelfExclusion = SelfExclusion.IDENTITY
    center_epsilon: float = 0.001
    shadow_distance: float = 1000.0

    def __post_init__(self):
        if self.background_color is None:
            self.background_color = Color(0.2, 0.2, 0.2, 1.0)
        if self.num_threads == 0:
            self.num_threads = os.cpu_count() or 4
        if self.tile_size <= 0:
            raise ValueError(f"Tile size must be positive, got {self.tile_size}")


def relu(x: float) -> float:
    """Clamp negative cosine terms to zero."""
    if x < 0:
        return 0.0
    return x


def phong(material: Material, light: Light, normal: Vec3, to_light: Vec3,
          reflected: Vec3, to_eye: Vec3) -> Color:
    """Full ambient + diffuse + specular contribution of one light."""
    return (
        material.ambient * light.ambient
        + material.diffuse * light.diffuse * relu(normal.dot(to_light))
        + material.specular * light.specular * (relu(to_eye.dot(reflected)) ** material.shininess)
    )


class RayTracer:
    """Whitted-style ray tracer with Phong shading and hard shadows."""

    def __init__(self, scene: Scene, settings: RenderSettings = None):
        """Create a ray tracer.

        Args:
            scene: Geometries and lights, read-only during rendering
            settings: Render configuration (uses defaults if None)
        """
        self.scene = scene
        self.settings = settings if settings else RenderSettings()
        self._progress_callback: Optional[Callable[[float], None]] = None

    def set_progress_callback(self, callback: Callable[[float], None]) -> None:
        """Set a callback function for progress updates.

        Args:
            callback: Function that takes progress as float (0.0 to 1.0)
        """
        self._progress_callback = callback

    def find_first_intersection(self, ray: Ray, min_dist: float, max_dist: float) -> Intersection:
        """Return the nearest valid, visible hit in [min_dist, max_dist].

        On equal distances the geometry found first in scene order wins.
        """
        intersection = Intersection.NONE

        for geometry in self.scene.geometries:
            candidate = geometry.intersect(ray, min_dist, max_dist)

            if not candidate.is_hit:
                continue

            if not intersection.is_hit or candidate.t < intersection.t:
                intersection = candidate

        return intersection

    def _is_owner(self, other: Geometry, owner: Geometry) -> bool:
        if self.settings.self_exclusion is SelfExclusion.CENTER:
            return other.center.distance_to(owner.center) < self.settings.center_epsilon
        return other is owner

    def is_lit(self, point: Point3, light: Light, owner: Geometry) -> bool:
        """Check whether light reaches point on the surface of owner.

        Only SURFACE geometries block light. The owner itself is skipped,
        which together with requiring t > 0 keeps a surface from
        shadowing its own points.
        """
        shadow_ray = Ray.towards(point, light.position)

        for geometry in self.scene.surfaces():
            if self._is_owner(geometry, owner):
                continue

            hit = geometry.intersect(shadow_ray, 0.0, self.settings.shadow_distance)
            if hit.is_hit and hit.t > 0:
                return False

        return True

    def shade(self, intersection: Intersection, eye: Point3) -> Color:
        """Sum the Phong contribution of every light at a hit.

        Volumetric hits use the per-sample material and skip the shadow
        test. Surface hits use the geometry's material and keep only the
        ambient term for lights they cannot see.

        Args:
            intersection: A valid, visible hit
            eye: Camera position

        Returns:
            The accumulated (unclamped) color
        """
        geometry = intersection.geometry
        point = intersection.position
        normal = intersection.normal
        to_eye = (eye - point).normalize()

        color = Color.black()
        for light in self.scene.lights:
            to_light = (light.position - point).normalize()
            reflected = (normal * (normal.dot(to_light) * 2) - to_light).normalize()

            if geometry.kind is SurfaceKind.VOLUMETRIC:
                color = color + phong(intersection.material, light, normal, to_light, reflected, to_eye)
            elif self.is_lit(point, light, geometry):
                color = color + phong(geometry.material, light, normal, to_light, reflected, to_eye)
            else:
                color = color + geometry.material.ambient * light.ambient

        return color

    def trace_pixel(self, camera: Camera, i: int, j: int, width: int, height: int) -> Color:
        """Compute the final color of pixel (i, j)."""
        ray = camera.get_ray(i, j, width, height)
        intersection = self.find_first_intersection(
            ray, camera.front_plane_distance, camera.back_plane_distance
        )

        if not intersection.valid:
            return self.settings.background_color
        return self.shade(intersection, camera.position)

    def render_image(self, camera: Camera, width: int, height: int) -> Image:
        """Render every pixel into a new image buffer.

        Tiles cover disjoint pixel ranges, so worker threads never write
        the same cell. The call returns only once every pixel is written.
        """
        image = Image(width, height)

        tiles = self._generate_tiles(width, height)
        total_tiles = len(tiles)
        completed_tiles = [0]  # Use list for mutable in closure
        progress_lock = threading.Lock()

        def render_tile(tile: Tuple[int, int, int, int]) -> None:
            x0, y0, x1, y1 = tile
            for i in range(x0, x1):
                for j in range(y0, y1):
                    image.set_pixel(i, j, self.trace_pixel(camera, i, j, width, height))

            # Reported under the lock so progress never goes backwards
            with progress_lock:
                completed_tiles[0] += 1
                done = completed_tiles[0]
                if self._progress_callback:
                    self._progress_callback(done / total_tiles)
            logger.debug("Finished tile %s (%d/%d)", tile, done, total_tiles)

        logger.info(
            "Rendering %dx%d, %d geometries, %d lights, %d threads",
            width, height, len(self.scene), len(self.scene.lights), self.settings.num_threads
        )
        start_time = time.time()

        if self.settings.num_threads > 1 and total_tiles > 1:
            with ThreadPoolExecutor(max_workers=self.settings.num_threads) as executor:
                # list() re-raises the first worker exception
                list(executor.map(render_tile, tiles))
        else:
            for tile in tiles:
                render_tile(tile)

        logger.info("Rendered %d pixels in %.2fs", width * height, time.time() - start_time)
        return image

    def render(self, camera: Camera, width: int, height: int, filename: Union[str, Path]) -> Image:
        """Render the scene and store it to filename.

        Args:
            camera: The camera to render from
            width: Output width in pixels
            height: Output height in pixels
            filename: Output file; the extension picks the format

        Returns:
            The rendered image buffer
        """
        image = self.render_image(camera, width, height)
        image.store(filename)
        return image

    def _generate_tiles(self, width: int, height: int) -> List[Tuple[int, int, int, int]]:
        """Generate tiles as (x0, y0, x1, y1) tuples for parallel rendering."""
        tile_size = self.settings.tile_size
        tiles = []

        for y in range(0, height, tile_size):
            for x in range(0, width, tile_size):
                x1 = min(x + tile_size, width)
                y1 = min(y + tile_size, height)
                tiles.append((x, y, x1, y1))

        return tiles
