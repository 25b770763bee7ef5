"""
PhongTrace - A Python Whitted-style Ray Tracer

Casts one primary ray per pixel, finds the nearest surface by linear
scan and shades it with the Phong model:
- Ambient, diffuse and specular terms per point light
- Hard shadows through secondary rays
- Ellipsoid surfaces and volumetric masks (sampled CT-style data)
- PNG/JPEG/BMP and Radiance HDR output
"""

__version__ = "0.1.0"
__author__ = "PhongTrace Team"

from .vec3 import Vec3, Point3, ComputationError
from .color import Color
from .ray import Ray
from .materials import Material
from .lights import Light
from .shapes import SurfaceKind, Intersection, Geometry, Ellipsoid, Scene
from .volumes import ColorMap, ColorMapEntry, VolumetricMask, VolumeFormatError, read_dat_header
from .camera import Camera, image_to_view_plane
from .image import Image
from .renderer import RayTracer, RenderSettings, SelfExclusion, relu, phong
from .scene_parser import SceneParser, SceneParseError, load_scene, parse_scene
