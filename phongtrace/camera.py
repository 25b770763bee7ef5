"""
Camera module for generating primary rays.

The camera looks along `direction` with `up` pointing up. Pixels are
projected onto a view plane at `view_plane_distance` in front of the
camera; only hits between the front and back clip planes are rendered.
"""

from __future__ import annotations
from .vec3 import Vec3, Point3
from .ray import Ray


def image_to_view_plane(n: int, img_size: int, view_plane_size: float) -> float:
    """Map a pixel index to a view-plane offset along one axis.

    Index 0 maps to +view_plane_size / 2 and index img_size - 1 to
    -view_plane_size / 2 + view_plane_size / img_size, so image x grows
    against the camera's view_parallel axis and image y against up.
    """
    return -n * view_plane_size / img_size + view_plane_size / 2


class Camera:
    """A pinhole camera with a rectangular view plane and clip planes."""

    def __init__(
        self,
        position: Point3,
        direction: Vec3,
        up: Vec3,
        view_plane_distance: float,
        view_plane_width: float,
        view_plane_height: float,
        front_plane_distance: float,
        back_plane_distance: float
    ):
        """Create a camera.

        Args:
            position: Camera position in world space
            direction: Viewing direction (normalized here)
            up: Up vector (normalized here)
            view_plane_distance: Distance from the camera to the view plane
            view_plane_width: World-space width of the view plane
            view_plane_height: World-space height of the view plane
            front_plane_distance: Nearest distance that is rendered
            back_plane_distance: Farthest distance that is rendered
        """
        if front_plane_distance > back_plane_distance:
            raise ValueError(
                f"Front plane ({front_plane_distance}) lies behind back plane ({back_plane_distance})"
            )
        self.position = position
        self.direction = direction.normalize()
        self.up = up.normalize()
        self.view_plane_distance = view_plane_distance
        self.view_plane_width = view_plane_width
        self.view_plane_height = view_plane_height
        self.front_plane_distance = front_plane_distance
        self.back_plane_distance = back_plane_distance

        # Computed once, every primary ray uses it
        self.view_parallel = self.up.cross(self.direction).normalize()

    @classmethod
    def look_at(
        cls,
        look_from: Point3,
        look_at: Point3,
        up: Vec3 = Vec3(0, 1, 0),
        view_plane_distance: float = 1.0,
        view_plane_width: float = 1.0,
        view_plane_height: float = 1.0,
        front_plane_distance: float = 0.0,
        back_plane_distance: float = 1000.0
    ) -> Camera:
        """Create a camera at look_from pointing at look_at."""
        return cls(
            position=look_from,
            direction=look_at - look_from,
            up=up,
            view_plane_distance=view_plane_distance,
            view_plane_width=view_plane_width,
            view_plane_height=view_plane_height,
            front_plane_distance=front_plane_distance,
            back_plane_distance=back_plane_distance,
        )

    def get_ray(self, i: int, j: int, width: int, height: int) -> Ray:
        """Generate the primary ray through pixel (i, j).

        Args:
            i: Column index (0 = left)
            j: Row index (0 = top)
            width: Image width in pixels
            height: Image height in pixels

        Returns:
            A unit-direction ray starting at the camera position
        """
        direction = (
            self.direction * self.view_plane_distance
            + self.view_parallel * image_to_view_plane(i, width, self.view_plane_width)
            + self.up * image_to_view_plane(j, height, self.view_plane_height)
        )
        return Ray(self.position, direction.normalize())

    def __repr__(self) -> str:
        return f"Camera(position={self.position}, direction={self.direction}, up={self.up})"
