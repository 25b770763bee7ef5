#!/usr/bin/env python3
"""
PhongTrace - A Python Whitted-style Ray Tracer

Main entry point for rendering scenes.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from phongtrace.vec3 import Vec3, Point3
from phongtrace.color import Color
from phongtrace.camera import Camera
from phongtrace.lights import Light
from phongtrace.materials import Material
from phongtrace.shapes import Ellipsoid, Scene
from phongtrace.renderer import RayTracer, RenderSettings
from phongtrace.scene_parser import load_scene


def create_demo_scene() -> Scene:
    """Create a demo scene with a few ellipsoids and two lights."""
    red = Material(
        ambient=Color(0.1, 0.0, 0.0, 1.0),
        diffuse=Color(0.7, 0.1, 0.1, 1.0),
        specular=Color(0.8, 0.8, 0.8, 1.0),
        shininess=50
    )
    green = Material(
        ambient=Color(0.0, 0.1, 0.0, 1.0),
        diffuse=Color(0.1, 0.6, 0.2, 1.0),
        specular=Color(0.5, 0.5, 0.5, 1.0),
        shininess=20
    )
    blue = Material(
        ambient=Color(0.0, 0.0, 0.1, 1.0),
        diffuse=Color(0.2, 0.3, 0.8, 1.0),
        specular=Color(1.0, 1.0, 1.0, 1.0),
        shininess=100
    )
    floor = Material(
        ambient=Color(0.1, 0.1, 0.1, 1.0),
        diffuse=Color(0.5, 0.5, 0.5, 1.0),
        specular=Color(0.1, 0.1, 0.1, 1.0),
        shininess=5
    )

    geometries = [
        # Flattened ellipsoid as a floor
        Ellipsoid(Point3(0, -1030, 0), Vec3(30, 1, 30), 1000, floor),
        Ellipsoid.sphere(Point3(0, 0, 0), 10, red),
        Ellipsoid(Point3(-25, -5, 10), Vec3(1, 2, 1), 5, green),
        Ellipsoid.sphere(Point3(22, -10, 15), 6, blue),
    ]

    lights = [
        Light(
            position=Point3(60, 80, 60),
            ambient=Color(0.2, 0.2, 0.2, 1.0),
            diffuse=Color(0.8, 0.8, 0.8, 1.0),
            specular=Color(1.0, 1.0, 1.0, 1.0)
        ),
        Light(
            position=Point3(-60, 40, 80),
            ambient=Color(0.1, 0.1, 0.1, 1.0),
            diffuse=Color(0.4, 0.4, 0.5, 1.0),
            specular=Color(0.5, 0.5, 0.5, 1.0)
        ),
    ]

    return Scene(geometries, lights)


def create_demo_camera(width: int, height: int) -> Camera:
    return Camera.look_at(
        look_from=Point3(0, 20, 100),
        look_at=Point3(0, -5, 0),
        up=Vec3(0, 1, 0),
        view_plane_distance=100,
        view_plane_width=100 * width / height,
        view_plane_height=100,
        front_plane_distance=0,
        back_plane_distance=1000
    )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='PhongTrace - A Python Whitted-style Ray Tracer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  python main.py --output output/demo.png
  python main.py --width 1920 --height 1080 --threads 8 --output output/hd.png
  python main.py --scene scenes/walnut.yaml --output output/walnut.hdr
        '''
    )

    parser.add_argument('--scene', type=str, default=None,
                        help='Scene file (YAML or JSON); renders the demo scene if omitted')
    parser.add_argument('--width', type=int, default=None, help='Image width (default: 800)')
    parser.add_argument('--height', type=int, default=None, help='Image height (default: 600)')
    parser.add_argument('--threads', type=int, default=None, help='Number of threads (0=auto)')
    parser.add_argument('--output', type=str, default='output/render.png', help='Output filename')
    parser.add_argument('--verbose', action='store_true', help='Log render progress details')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s'
    )

    print("=" * 60)
    print("PhongTrace Ray Tracer")
    print("=" * 60)

    if args.scene:
        print(f"\nLoading scene: {args.scene}")
        scene, camera, settings = load_scene(args.scene)
    else:
        print("\nCreating demo scene")
        scene, camera, settings = create_demo_scene(), None, RenderSettings()

    if args.width is not None:
        settings.width = args.width
    if args.height is not None:
        settings.height = args.height
    if args.threads is not None:
        settings.num_threads = RenderSettings(num_threads=args.threads).num_threads
    if camera is None:
        camera = create_demo_camera(settings.width, settings.height)

    print(f"  Geometries in scene: {len(scene)}")
    print(f"  Lights in scene: {len(scene.lights)}")
    print(f"\nRender Settings:")
    print(f"  Resolution: {settings.width}x{settings.height}")
    print(f"  Threads: {settings.num_threads}")

    tracer = RayTracer(scene, settings)

    # Progress tracking
    last_progress = [0]

    def progress_callback(progress: float):
        pct = int(progress * 100)
        if pct > last_progress[0]:
            last_progress[0] = pct
            bar_len = 40
            filled = int(bar_len * progress)
            bar = '█' * filled + '░' * (bar_len - filled)
            print(f'\rRendering: [{bar}] {pct}%', end='', flush=True)

    tracer.set_progress_callback(progress_callback)

    # Ensure output directory exists
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    print("\nRendering...")
    start_time = time.time()

    tracer.render(camera, settings.width, settings.height, args.output)

    elapsed = time.time() - start_time
    print(f"\nRender completed in {elapsed:.2f} seconds")
    print(f"  Primary rays per second: {(settings.width * settings.height) / elapsed:.0f}")
    print(f"\nSaved to: {args.output}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
