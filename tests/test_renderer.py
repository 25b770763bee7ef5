"""Tests for the RayTracer."""

import pytest
import math
import os
import numpy as np

from phongtrace.vec3 import Vec3, Point3, ComputationError
from phongtrace.color import Color
from phongtrace.ray import Ray
from phongtrace.camera import Camera
from phongtrace.lights import Light
from phongtrace.materials import Material
from phongtrace.shapes import Ellipsoid, Intersection, Scene
from phongtrace.volumes import ColorMap, VolumetricMask
from phongtrace.renderer import RayTracer, RenderSettings, SelfExclusion, relu, phong


BACKGROUND = (0.2, 0.2, 0.2, 1.0)


@pytest.fixture
def red():
    return Material(
        ambient=Color(0.1, 0.1, 0.1, 1.0),
        diffuse=Color(0.8, 0.2, 0.2, 1.0),
        specular=Color(0.5, 0.5, 0.5, 1.0),
        shininess=10
    )


@pytest.fixture
def light():
    return Light(
        position=Point3(0, 10, 0),
        ambient=Color(0.2, 0.2, 0.2, 1.0),
        diffuse=Color(1.0, 1.0, 1.0, 1.0),
        specular=Color(1.0, 1.0, 1.0, 1.0)
    )


def z_camera(distance=5.0):
    """Camera on +Z looking at the origin."""
    return Camera(
        position=Point3(0, 0, distance),
        direction=Vec3(0, 0, -1),
        up=Vec3(0, 1, 0),
        view_plane_distance=1.0,
        view_plane_width=1.0,
        view_plane_height=1.0,
        front_plane_distance=0.0,
        back_plane_distance=1000.0
    )


def surface_hit(geometry, point, normal):
    return Intersection(
        valid=True, visible=True, t=1.0, position=point, normal=normal,
        geometry=geometry, material=geometry.material
    )


class TestRenderSettings:
    """Test RenderSettings configuration."""

    def test_default_values(self):
        settings = RenderSettings()
        assert settings.width == 800
        assert settings.height == 600
        assert settings.background_color.to_tuple() == BACKGROUND
        assert settings.self_exclusion is SelfExclusion.IDENTITY
        assert settings.center_epsilon == 0.001
        assert settings.shadow_distance == 1000.0

    def test_auto_thread_detection(self):
        settings = RenderSettings(num_threads=0)
        assert settings.num_threads == (os.cpu_count() or 4)

    def test_invalid_tile_size(self):
        with pytest.raises(ValueError):
            RenderSettings(tile_size=0)


class TestRelu:
    """Test the cosine clamp."""

    def test_positive_passes(self):
        assert relu(0.5) == 0.5

    def test_negative_clamped(self):
        assert relu(-0.5) == 0.0

    def test_zero(self):
        assert relu(0.0) == 0.0


class TestFindFirstIntersection:
    """Test nearest-hit selection."""

    def test_empty_scene(self):
        tracer = RayTracer(Scene())
        ray = Ray(Point3(0, 0, 5), Vec3(0, 0, -1))
        assert tracer.find_first_intersection(ray, 0, 100) is Intersection.NONE

    def test_nearest_of_two_spheres(self, red):
        far = Ellipsoid.sphere(Point3(0, 0, -5), 1.0, red)
        near = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([far, near]))

        hit = tracer.find_first_intersection(Ray(Point3(0, 0, 5), Vec3(0, 0, -1)), 0, 100)
        assert hit.geometry is near
        assert hit.t == pytest.approx(4.0)

    def test_range_excludes_nearer_sphere(self, red):
        far = Ellipsoid.sphere(Point3(0, 0, -5), 1.0, red)
        near = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([near, far]))

        hit = tracer.find_first_intersection(Ray(Point3(0, 0, 5), Vec3(0, 0, -1)), 7, 100)
        assert hit.geometry is far

    def test_tie_keeps_scan_order(self, red):
        first = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        second = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([first, second]))

        hit = tracer.find_first_intersection(Ray(Point3(0, 0, 5), Vec3(0, 0, -1)), 0, 100)
        assert hit.geometry is first

    def test_invisible_hits_skipped(self, red):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere]))
        hit = tracer.find_first_intersection(Ray(Point3(0, 0, 5), Vec3(0, 0, -1)), 0, 3)
        assert not hit.valid


class TestIsLit:
    """Test the shadow tester."""

    def test_unoccluded(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere], [light]))
        assert tracer.is_lit(Point3(0, 1, 0), light, sphere)

    def test_occluded_by_other_sphere(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        blocker = Ellipsoid.sphere(Point3(0, 5, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere, blocker], [light]))
        assert not tracer.is_lit(Point3(0, 1, 0), light, sphere)

    def test_own_surface_never_shadows(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere], [light]))
        # Bottom of the sphere: the light is behind the sphere itself
        assert tracer.is_lit(Point3(0, -1, 0), light, sphere)

    def test_blocker_behind_point_ignored(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        below = Ellipsoid.sphere(Point3(0, -5, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere, below], [light]))
        assert tracer.is_lit(Point3(0, 1, 0), light, sphere)

    def test_blocker_beyond_light_still_shadows(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        beyond = Ellipsoid.sphere(Point3(0, 50, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere, beyond], [light]))
        assert not tracer.is_lit(Point3(0, 1, 0), light, sphere)

    def test_shadow_distance_limit(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        beyond = Ellipsoid.sphere(Point3(0, 50, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere, beyond], [light]), RenderSettings(shadow_distance=20.0))
        assert tracer.is_lit(Point3(0, 1, 0), light, sphere)

    def test_volumes_never_occlude(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        data = np.full((4, 4, 4), 200, dtype=np.uint8)
        volume = VolumetricMask(
            data, Point3(-2, 3, -2), Vec3(1, 1, 1), ColorMap.threshold(100, Color(1, 1, 1, 1))
        )
        tracer = RayTracer(Scene([sphere, volume], [light]))
        assert tracer.is_lit(Point3(0, 1, 0), light, sphere)

    def test_identity_exclusion_with_concentric_spheres(self, red, light):
        inner = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        outer = Ellipsoid.sphere(Point3(0, 0, 0), 2.0, red)
        tracer = RayTracer(Scene([inner, outer], [light]))
        assert not tracer.is_lit(Point3(0, 1, 0), light, inner)

    def test_center_exclusion_with_concentric_spheres(self, red, light):
        inner = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        outer = Ellipsoid.sphere(Point3(0, 0, 0.0005), 2.0, red)
        settings = RenderSettings(self_exclusion=SelfExclusion.CENTER)
        tracer = RayTracer(Scene([inner, outer], [light]), settings)
        assert tracer.is_lit(Point3(0, 1, 0), light, inner)

    def test_center_exclusion_respects_epsilon(self, red, light):
        inner = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        outer = Ellipsoid.sphere(Point3(0, 0, 0.01), 2.0, red)
        settings = RenderSettings(self_exclusion=SelfExclusion.CENTER)
        tracer = RayTracer(Scene([inner, outer], [light]), settings)
        assert not tracer.is_lit(Point3(0, 1, 0), light, inner)


class TestShade:
    """Test Phong shading composition."""

    def test_lit_surface_gets_full_phong(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere], [light]))
        hit = surface_hit(sphere, Point3(0, 1, 0), Vec3(0, 1, 0))

        color = tracer.shade(hit, Point3(0, 5, 0))
        # N.T = 1 and E.R = 1
        expected = red.ambient * light.ambient + red.diffuse * light.diffuse + red.specular * light.specular
        assert color == expected

    def test_shadowed_surface_gets_ambient_only(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        blocker = Ellipsoid.sphere(Point3(0, 5, 0), 1.0, red)
        tracer = RayTracer(Scene([sphere, blocker], [light]))
        hit = surface_hit(sphere, Point3(0, 1, 0), Vec3(0, 1, 0))

        color = tracer.shade(hit, Point3(0, 0, 5))
        assert color == red.ambient * light.ambient

    def test_removing_blocker_restores_light(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        blocker = Ellipsoid.sphere(Point3(0, 5, 0), 1.0, red)
        hit = surface_hit(sphere, Point3(0, 1, 0), Vec3(0, 1, 0))

        shadowed = RayTracer(Scene([sphere, blocker], [light])).shade(hit, Point3(0, 0, 5))
        lit = RayTracer(Scene([sphere], [light])).shade(hit, Point3(0, 0, 5))
        assert lit.r > shadowed.r
        assert lit.brightness() > shadowed.brightness()

    def test_surface_uses_geometry_material(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        other = Material.from_color(Color(0, 0, 1, 1))
        tracer = RayTracer(Scene([sphere], [light]))
        hit = Intersection(
            valid=True, visible=True, t=1.0, position=Point3(0, 1, 0),
            normal=Vec3(0, 1, 0), geometry=sphere, material=other
        )
        color = tracer.shade(hit, Point3(0, 5, 0))
        assert color.r > 0
        assert color.b == pytest.approx(color.g)

    def test_volumetric_hit_ignores_occluders(self, red, light):
        data = np.full((2, 2, 2), 200, dtype=np.uint8)
        volume = VolumetricMask(data, Point3(-1, -1, -1), Vec3(1, 1, 1), ColorMap())
        blocker = Ellipsoid.sphere(Point3(0, 5, 0), 1.0, red)
        tracer = RayTracer(Scene([volume, blocker], [light]))

        sample = Material.from_color(Color(0.5, 0.5, 0.5, 1.0), 10)
        hit = Intersection(
            valid=True, visible=True, t=1.0, position=Point3(0, 1, 0),
            normal=Vec3(0, 1, 0), geometry=volume, material=sample
        )
        color = tracer.shade(hit, Point3(0, 5, 0))
        expected = phong(sample, light, Vec3(0, 1, 0), Vec3(0, 1, 0), Vec3(0, 1, 0), Vec3(0, 1, 0))
        assert color == expected
        assert color.r > (sample.ambient * light.ambient).r

    def test_light_behind_surface_clamped(self, red):
        back_light = Light(
            position=Point3(0, 0, -10),
            ambient=Color(0.2, 0.2, 0.2, 1.0),
            diffuse=Color(1, 1, 1, 1),
            specular=Color(1, 1, 1, 1)
        )
        fractional = Material(red.ambient, red.diffuse, red.specular, shininess=0.5)
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, fractional)
        tracer = RayTracer(Scene([sphere], [back_light]))
        hit = surface_hit(sphere, Point3(0, 0, 1), Vec3(0, 0, 1))

        color = tracer.shade(hit, Point3(0, 0, 5))
        assert not np.any(np.isnan(color.to_array()))
        assert color == fractional.ambient * back_light.ambient

    def test_lights_accumulate(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        hit = surface_hit(sphere, Point3(0, 1, 0), Vec3(0, 1, 0))
        one = RayTracer(Scene([sphere], [light])).shade(hit, Point3(0, 5, 0))
        two = RayTracer(Scene([sphere], [light, light])).shade(hit, Point3(0, 5, 0))
        assert two == one * 2

    def test_no_lights_is_transparent_black(self, red):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        hit = surface_hit(sphere, Point3(0, 1, 0), Vec3(0, 1, 0))
        color = RayTracer(Scene([sphere])).shade(hit, Point3(0, 5, 0))
        assert color.to_tuple() == (0.0, 0.0, 0.0, 0.0)

    def test_eye_at_hit_point_raises(self, red, light):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        hit = surface_hit(sphere, Point3(0, 1, 0), Vec3(0, 1, 0))
        with pytest.raises(ComputationError):
            RayTracer(Scene([sphere], [light])).shade(hit, Point3(0, 1, 0))


class TestRenderImage:
    """Test whole-frame rendering."""

    @pytest.fixture
    def scene(self, red):
        sphere = Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)
        top_light = Light(
            position=Point3(0, 5, 0),
            ambient=Color(0.2, 0.2, 0.2, 1.0),
            diffuse=Color(1.0, 1.0, 1.0, 1.0),
            specular=Color(0.0, 0.0, 0.0, 1.0)
        )
        return Scene([sphere], [top_light])

    def test_empty_scene_is_background(self):
        tracer = RayTracer(Scene(), RenderSettings(num_threads=1))
        image = tracer.render_image(z_camera(), 6, 4)
        for i in range(6):
            for j in range(4):
                assert image.get_pixel(i, j).to_tuple() == BACKGROUND

    def test_custom_background(self):
        settings = RenderSettings(num_threads=1, background_color=Color(0.1, 0.2, 0.3, 1.0))
        image = RayTracer(Scene(), settings).render_image(z_camera(), 2, 2)
        assert image.get_pixel(1, 1).to_tuple() == (0.1, 0.2, 0.3, 1.0)

    def test_sphere_silhouette(self, scene, red):
        tracer = RayTracer(scene, RenderSettings(num_threads=1))
        image = tracer.render_image(z_camera(), 10, 10)

        # Corners miss the sphere
        for i, j in [(0, 0), (9, 0), (0, 9), (9, 9)]:
            assert image.get_pixel(i, j).to_tuple() == BACKGROUND

        # Just above the image center, facing both camera and light
        center = image.get_pixel(5, 4)
        ambient = red.ambient * scene.lights[0].ambient
        assert center.to_tuple() != BACKGROUND
        assert center.r > ambient.r

    def test_back_plane_clips_scene(self, scene):
        camera = Camera(
            position=Point3(0, 0, 5),
            direction=Vec3(0, 0, -1),
            up=Vec3(0, 1, 0),
            view_plane_distance=1.0,
            view_plane_width=1.0,
            view_plane_height=1.0,
            front_plane_distance=0.0,
            back_plane_distance=2.0
        )
        image = RayTracer(scene, RenderSettings(num_threads=1)).render_image(camera, 4, 4)
        assert image.get_pixel(2, 2).to_tuple() == BACKGROUND

    def test_parallel_matches_sequential(self, scene):
        sequential = RayTracer(scene, RenderSettings(num_threads=1, tile_size=3))
        parallel = RayTracer(scene, RenderSettings(num_threads=4, tile_size=3))

        a = sequential.render_image(z_camera(), 12, 9)
        b = parallel.render_image(z_camera(), 12, 9)
        assert np.array_equal(a.data, b.data)

    def test_progress_callback(self, scene):
        tracer = RayTracer(scene, RenderSettings(num_threads=1, tile_size=5))
        progress_values = []
        tracer.set_progress_callback(progress_values.append)

        tracer.render_image(z_camera(), 10, 10)

        assert len(progress_values) == 4
        assert progress_values[-1] == 1.0

    def test_parallel_progress_is_monotonic(self, scene):
        tracer = RayTracer(scene, RenderSettings(num_threads=4, tile_size=2))
        progress_values = []
        tracer.set_progress_callback(progress_values.append)

        tracer.render_image(z_camera(), 10, 10)

        assert len(progress_values) == 25
        assert progress_values == sorted(progress_values)
        assert progress_values[-1] == 1.0

    def test_volume_frame_ignores_occluders(self, light):
        volume = VolumetricMask(
            np.full((4, 4, 4), 200, dtype=np.uint8),
            Point3(-1, -1, -1),
            Vec3(0.5, 0.5, 0.5),
            ColorMap.threshold(100, Color(0.9, 0.8, 0.7, 1.0))
        )
        blocker_material = Material.from_color(Color(0, 0, 1, 1))
        # Between the volume and the light, above the camera's field of view
        blocker = Ellipsoid.sphere(Point3(0, 5, 0), 1.0, blocker_material)

        settings = RenderSettings(num_threads=1)
        open_frame = RayTracer(Scene([volume], [light]), settings).render_image(z_camera(), 8, 8)
        blocked_tracer = RayTracer(Scene([volume, blocker], [light]), settings)
        blocked_frame = blocked_tracer.render_image(z_camera(), 8, 8)

        assert not blocked_tracer.is_lit(Point3(0, 1, 0), light, volume)
        assert open_frame.get_pixel(4, 4).to_tuple() != BACKGROUND
        assert np.array_equal(open_frame.data, blocked_frame.data)

    def test_tiles_cover_image(self):
        tracer = RayTracer(Scene(), RenderSettings(tile_size=4))
        tiles = tracer._generate_tiles(10, 6)
        covered = set()
        for x0, y0, x1, y1 in tiles:
            for i in range(x0, x1):
                for j in range(y0, y1):
                    assert (i, j) not in covered
                    covered.add((i, j))
        assert len(covered) == 60


class TestRender:
    """Test rendering to a file."""

    def test_writes_file(self, tmp_path, red, light):
        scene = Scene([Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)], [light])
        path = tmp_path / 'render.png'
        image = RayTracer(scene, RenderSettings(num_threads=1)).render(z_camera(), 8, 6, path)

        assert path.exists()
        assert image.width == 8
        assert image.height == 6

    def test_repeated_renders_are_identical(self, tmp_path, red, light):
        scene = Scene([Ellipsoid.sphere(Point3(0, 0, 0), 1.0, red)], [light])
        first = tmp_path / 'a.png'
        second = tmp_path / 'b.png'
        RayTracer(scene, RenderSettings(num_threads=1)).render(z_camera(), 8, 8, first)
        RayTracer(scene, RenderSettings(num_threads=3, tile_size=2)).render(z_camera(), 8, 8, second)
        assert first.read_bytes() == second.read_bytes()

    def test_store_failure_propagates(self, tmp_path):
        tracer = RayTracer(Scene(), RenderSettings(num_threads=1))
        with pytest.raises(OSError):
            tracer.render(z_camera(), 2, 2, tmp_path / 'missing' / 'render.png')
