"""
Scene description language parser.

Supports a YAML (or JSON) scene description format with:
- Camera configuration
- Render settings
- Materials library
- Objects (ellipsoids, spheres and volumetric masks)
- Lights

Example scene file:
```yaml
camera:
  position: [0, 0, 10]
  direction: [0, 0, -1]
  up: [0, 1, 0]
  view_plane_distance: 1
  view_plane_width: 1
  view_plane_height: 1
  front_plane_distance: 0
  back_plane_distance: 1000

render:
  width: 400
  height: 400
  background: [0.2, 0.2, 0.2, 1.0]

materials:
  red:
    ambient: [0.1, 0.0, 0.0]
    diffuse: [0.7, 0.1, 0.1]
    specular: [1, 1, 1]
    shininess: 50

objects:
  - type: sphere
    center: [0, 0, 0]
    radius: 1
    material: red

  - type: volume
    dat: walnut.dat
    position: [-2, -2, -2]
    scale: 0.01
    color_map:
      - range: [1, 255]
        color: [0.9, 0.8, 0.6, 1.0]

lights:
  - position: [0, 5, 5]
    ambient: [0.1, 0.1, 0.1]
    diffuse: [1, 1, 1]
    specular: [1, 1, 1]
```
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

import yaml

from .vec3 import Vec3, Point3
from .color import Color
from .camera import Camera
from .lights import Light
from .materials import Material
from .shapes import Ellipsoid, Geometry, Scene
from .volumes import ColorMap, VolumetricMask
from .renderer import RenderSettings, SelfExclusion

logger = logging.getLogger(__name__)


class SceneParseError(Exception):
    """Error during scene parsing."""
    pass


class SceneParser:
    """Parser for scene description files."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = base_dir or Path('.')
        self.materials: Dict[str, Material] = {}
        self.geometries: List[Geometry] = []
        self.lights: List[Light] = []
        self.camera: Optional[Camera] = None
        self.settings: Optional[RenderSettings] = None

    def parse_file(self, filepath: str) -> Tuple[Scene, Camera, RenderSettings]:
        """Parse a scene file.

        Args:
            filepath: Path to the scene file (YAML or JSON)

        Returns:
            Tuple of (scene, camera, settings)
        """
        path = Path(filepath)
        if not path.exists():
            raise SceneParseError(f"Scene file not found: {filepath}")

        self.base_dir = path.parent
        content = path.read_text()

        try:
            if path.suffix.lower() == '.json':
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise SceneParseError(f"Cannot read {filepath}: {e}") from e

        if not isinstance(data, dict):
            raise SceneParseError(f"Scene file must contain a mapping: {filepath}")

        return self.parse_dict(data)

    def parse_dict(self, data: Dict[str, Any]) -> Tuple[Scene, Camera, RenderSettings]:
        """Parse a scene from a dictionary.

        Args:
            data: Scene description dictionary

        Returns:
            Tuple of (scene, camera, settings)
        """
        # Parse materials first (objects reference them)
        if 'materials' in data:
            self._parse_materials(data['materials'])

        if 'objects' in data:
            self._parse_objects(data['objects'])

        if 'lights' in data:
            self._parse_lights(data['lights'])

        if 'camera' in data:
            self._parse_camera(data['camera'])
        else:
            # Default camera on +Z looking at the origin
            self.camera = Camera.look_at(Point3(0, 0, 10), Point3(0, 0, 0))

        if 'render' in data:
            self._parse_settings(data['render'])
        else:
            self.settings = RenderSettings()

        scene = Scene(self.geometries, self.lights)
        logger.info("Parsed scene: %d geometries, %d lights", len(scene), len(scene.lights))
        return scene, self.camera, self.settings

    def _parse_float(self, data: Any, name: str) -> float:
        """Parse a number, reporting the field name on failure."""
        try:
            return float(data)
        except (TypeError, ValueError) as e:
            raise SceneParseError(f"{name} must be a number, got {data!r}") from e

    def _parse_vec3(self, data: Any) -> Vec3:
        """Parse a Vec3 from various formats."""
        if isinstance(data, (list, tuple)):
            if len(data) != 3:
                raise SceneParseError(f"Vec3 must have 3 components, got {len(data)}")
            return Vec3(*(self._parse_float(c, 'Vec3 component') for c in data))
        elif isinstance(data, dict):
            return Vec3(
                self._parse_float(data.get('x', 0), 'x'),
                self._parse_float(data.get('y', 0), 'y'),
                self._parse_float(data.get('z', 0), 'z')
            )
        else:
            raise SceneParseError(f"Cannot parse Vec3 from: {data}")

    def _parse_color(self, data: Any) -> Color:
        """Parse a Color from a 3/4 element list, an r/g/b/a dict or #rrggbb."""
        if isinstance(data, (list, tuple)):
            if len(data) not in (3, 4):
                raise SceneParseError(f"Color must have 3 or 4 components, got {len(data)}")
            return Color(*(self._parse_float(c, 'Color component') for c in data))
        elif isinstance(data, dict):
            return Color(
                self._parse_float(data.get('r', 0), 'r'),
                self._parse_float(data.get('g', 0), 'g'),
                self._parse_float(data.get('b', 0), 'b'),
                self._parse_float(data.get('a', 1), 'a')
            )
        elif isinstance(data, str):
            if data.startswith('#'):
                hex_color = data[1:]
                try:
                    if len(hex_color) == 6:
                        r = int(hex_color[0:2], 16) / 255.0
                        g = int(hex_color[2:4], 16) / 255.0
                        b = int(hex_color[4:6], 16) / 255.0
                        return Color(r, g, b)
                except ValueError as e:
                    raise SceneParseError(f"Cannot parse color from string: {data}") from e
            raise SceneParseError(f"Cannot parse color from string: {data}")
        else:
            raise SceneParseError(f"Cannot parse Color from: {data}")

    def _parse_material(self, mat_data: Any) -> Material:
        if not isinstance(mat_data, dict):
            raise SceneParseError(f"Material must be a mapping, got {mat_data!r}")
        try:
            if 'color' in mat_data:
                return Material.from_color(
                    self._parse_color(mat_data['color']),
                    self._parse_float(mat_data.get('shininess', 10.0), 'shininess')
                )
            return Material(
                ambient=self._parse_color(mat_data.get('ambient', [0.1, 0.1, 0.1])),
                diffuse=self._parse_color(mat_data.get('diffuse', [0.5, 0.5, 0.5])),
                specular=self._parse_color(mat_data.get('specular', [0.5, 0.5, 0.5])),
                shininess=self._parse_float(mat_data.get('shininess', 1.0), 'shininess')
            )
        except ValueError as e:
            raise SceneParseError(str(e)) from e

    def _parse_materials(self, materials_data: Dict[str, Any]) -> None:
        """Parse materials section."""
        if not isinstance(materials_data, dict):
            raise SceneParseError(f"Materials must be a mapping, got {materials_data!r}")
        for name, mat_data in materials_data.items():
            self.materials[name] = self._parse_material(mat_data)

    def _get_material(self, mat_ref: Any) -> Material:
        """Get a material by name or inline definition."""
        if mat_ref is None:
            raise SceneParseError("Surface objects need a material")
        if isinstance(mat_ref, str):
            if mat_ref not in self.materials:
                raise SceneParseError(f"Unknown material: {mat_ref}")
            return self.materials[mat_ref]
        elif isinstance(mat_ref, dict):
            return self._parse_material(mat_ref)
        else:
            raise SceneParseError(f"Invalid material reference: {mat_ref}")

    def _parse_color_map(self, entries: List[Dict[str, Any]]) -> ColorMap:
        color_map = ColorMap()
        for entry in entries:
            try:
                lower, upper = entry['range']
                color_map.add(float(lower), float(upper), self._parse_color(entry['color']))
            except (KeyError, TypeError, ValueError) as e:
                raise SceneParseError(f"Invalid color map entry {entry}: {e}") from e
        return color_map

    def _parse_objects(self, objects_data: list) -> None:
        """Parse objects section."""
        for obj_data in objects_data:
            if not isinstance(obj_data, dict):
                raise SceneParseError(f"Object entry must be a mapping, got {obj_data!r}")
            obj_type = str(obj_data.get('type', 'sphere')).lower()

            try:
                if obj_type == 'sphere':
                    center = self._parse_vec3(obj_data.get('center', [0, 0, 0]))
                    radius = self._parse_float(obj_data.get('radius', 1.0), 'radius')
                    material = self._get_material(obj_data.get('material'))
                    self.geometries.append(Ellipsoid.sphere(center, radius, material))

                elif obj_type == 'ellipsoid':
                    center = self._parse_vec3(obj_data.get('center', [0, 0, 0]))
                    semi_axes = self._parse_vec3(obj_data.get('semi_axes', [1, 1, 1]))
                    radius = self._parse_float(obj_data.get('radius', 1.0), 'radius')
                    material = self._get_material(obj_data.get('material'))
                    self.geometries.append(Ellipsoid(center, semi_axes, radius, material))

                elif obj_type == 'volume':
                    if 'dat' not in obj_data:
                        raise SceneParseError("Volume objects need a 'dat' header path")
                    dat_path = self.base_dir / obj_data['dat']
                    position = self._parse_vec3(obj_data.get('position', [0, 0, 0]))
                    scale = self._parse_float(obj_data.get('scale', 1.0), 'scale')
                    color_map = self._parse_color_map(obj_data.get('color_map', []))
                    step = obj_data.get('step')
                    self.geometries.append(VolumetricMask.load(
                        dat_path,
                        position,
                        scale,
                        color_map,
                        step=self._parse_float(step, 'step') if step is not None else None,
                        shininess=self._parse_float(obj_data.get('shininess', 10.0), 'shininess')
                    ))

                else:
                    raise SceneParseError(f"Unknown object type: {obj_type}")
            except (TypeError, ValueError) as e:
                raise SceneParseError(f"Invalid {obj_type}: {e}") from e

    def _parse_lights(self, lights_data: list) -> None:
        """Parse lights section.

        A light with `intensity` is white; its `ambient` is then a single
        brightness instead of a color.
        """
        for light_data in lights_data:
            if not isinstance(light_data, dict):
                raise SceneParseError(f"Light entry must be a mapping, got {light_data!r}")
            position = self._parse_vec3(light_data.get('position', [0, 5, 0]))
            if 'intensity' in light_data:
                self.lights.append(Light.white(
                    position,
                    self._parse_float(light_data['intensity'], 'intensity'),
                    self._parse_float(light_data.get('ambient', 0.1), 'ambient')
                ))
                continue
            self.lights.append(Light(
                position=position,
                ambient=self._parse_color(light_data.get('ambient', [0.1, 0.1, 0.1])),
                diffuse=self._parse_color(light_data.get('diffuse', [1, 1, 1])),
                specular=self._parse_color(light_data.get('specular', [1, 1, 1]))
            ))

    def _parse_camera(self, camera_data: Dict[str, Any]) -> None:
        """Parse camera section.

        Accepts either an explicit `direction` or a `look_at` target.
        """
        if not isinstance(camera_data, dict):
            raise SceneParseError(f"Camera must be a mapping, got {camera_data!r}")
        position = self._parse_vec3(camera_data.get('position', [0, 0, 10]))
        if 'look_at' in camera_data:
            direction = self._parse_vec3(camera_data['look_at']) - position
        else:
            direction = self._parse_vec3(camera_data.get('direction', [0, 0, -1]))

        try:
            self.camera = Camera(
                position=position,
                direction=direction,
                up=self._parse_vec3(camera_data.get('up', [0, 1, 0])),
                view_plane_distance=self._parse_float(camera_data.get('view_plane_distance', 1.0), 'view_plane_distance'),
                view_plane_width=self._parse_float(camera_data.get('view_plane_width', 1.0), 'view_plane_width'),
                view_plane_height=self._parse_float(camera_data.get('view_plane_height', 1.0), 'view_plane_height'),
                front_plane_distance=self._parse_float(camera_data.get('front_plane_distance', 0.0), 'front_plane_distance'),
                back_plane_distance=self._parse_float(camera_data.get('back_plane_distance', 1000.0), 'back_plane_distance')
            )
        except ArithmeticError as e:
            raise SceneParseError(f"Degenerate camera: {e}") from e
        except (TypeError, ValueError) as e:
            raise SceneParseError(f"Invalid camera: {e}") from e

    def _parse_settings(self, settings_data: Dict[str, Any]) -> None:
        """Parse render settings section."""
        if not isinstance(settings_data, dict):
            raise SceneParseError(f"Render settings must be a mapping, got {settings_data!r}")
        background = settings_data.get('background')
        try:
            self.settings = RenderSettings(
                width=int(settings_data.get('width', 800)),
                height=int(settings_data.get('height', 600)),
                background_color=self._parse_color(background) if background is not None else None,
                tile_size=int(settings_data.get('tile_size', 32)),
                num_threads=int(settings_data.get('threads', 0)),
                self_exclusion=SelfExclusion(settings_data.get('self_exclusion', 'identity')),
                center_epsilon=float(settings_data.get('center_epsilon', 0.001)),
                shadow_distance=float(settings_data.get('shadow_distance', 1000.0))
            )
        except (TypeError, ValueError) as e:
            raise SceneParseError(f"Invalid render settings: {e}") from e


def load_scene(filepath: str) -> Tuple[Scene, Camera, RenderSettings]:
    """Convenience function to load a scene file.

    Args:
        filepath: Path to the scene file

    Returns:
        Tuple of (scene, camera, settings)
    """
    parser = SceneParser()
    return parser.parse_file(filepath)


def parse_scene(data: Dict[str, Any]) -> Tuple[Scene, Camera, RenderSettings]:
    """Convenience function to parse a scene from a dictionary.

    Args:
        data: Scene description dictionary

    Returns:
        Tuple of (scene, camera, settings)
    """
    parser = SceneParser()
    return parser.parse_dict(data)
