"""Tests for background strategies and their fallbacks."""

import numpy as np
import pytest
from PIL import Image

from quotereel.config import hex_to_rgb
from quotereel.models import VideoOptions
from quotereel.video.backgrounds import (
    CrossfadeBackground,
    StaticBackground,
    apply_overlay,
    build_background,
    render_gradient,
    slideshow_position,
)

PALETTE = {"background": "#1a1a2e", "text": "#ffffff", "accent": "#ff6b6b"}


def pixel(img, x=0, y=0):
    return img.convert("RGB").getpixel((x, y))


class TestGradient:
    def test_runs_from_top_color_to_bottom_color(self):
        img = render_gradient(20, 50, (0, 0, 0), (200, 100, 50))
        assert img.size == (20, 50)
        assert pixel(img, 5, 0) == (0, 0, 0)
        assert pixel(img, 5, 49) == (200, 100, 50)

    def test_rows_are_uniform(self):
        img = render_gradient(10, 30, (10, 20, 30), (240, 230, 220))
        arr = np.asarray(img)
        assert (arr[15] == arr[15][0]).all()


class TestOverlay:
    def test_darkens_by_opacity(self):
        img = Image.new("RGB", (4, 4), (200, 100, 50))
        assert pixel(apply_overlay(img, 0.5)) == (100, 50, 25)

    def test_zero_opacity_is_noop(self):
        img = Image.new("RGB", (4, 4), (200, 100, 50))
        assert pixel(apply_overlay(img, 0)) == (200, 100, 50)


class TestSlideshowPosition:
    def test_second_image_early_in_segment(self):
        current, next_index, alpha = slideshow_position(0.35, 3)
        assert current == 1
        assert next_index == 2
        assert alpha == 0.0

    def test_crossfade_in_last_fifth(self):
        current, next_index, alpha = slideshow_position(0.3, 3)
        assert (current, next_index) == (0, 1)
        assert alpha == pytest.approx(0.5)

    def test_last_image_wraps_to_first(self):
        current, next_index, _ = slideshow_position(0.99, 3)
        assert (current, next_index) == (2, 0)

    def test_single_image_never_crossfades(self):
        assert slideshow_position(0.95, 1) == (0, 0, 0.0)


class TestBuildBackground:
    def test_gradient(self):
        bg = build_background(VideoOptions(background="gradient"), "motivation", PALETTE, 30, 60)
        assert isinstance(bg, StaticBackground)
        assert bg.label == "gradient"
        assert pixel(bg.draw(0.0), 0, 0) == hex_to_rgb(PALETTE["background"])

    def test_solid_uses_palette_background(self):
        bg = build_background(VideoOptions(background="solid"), "motivation", PALETTE, 30, 60)
        assert bg.label == "solid"
        assert pixel(bg.draw(0.5), 10, 50) == hex_to_rgb(PALETTE["background"])

    def test_image_without_provider_falls_back_to_gradient(self):
        bg = build_background(VideoOptions(background="image"), "motivation", PALETTE, 30, 60)
        assert bg.label == "gradient"

    def test_image_from_provider_gets_overlay(self, image_files):
        options = VideoOptions(background="image", image_overlay_opacity=0.5)
        bg = build_background(
            options, "motivation", PALETTE, 30, 60,
            image_provider=lambda theme, w, h: image_files[0],
        )
        assert bg.label == "image"
        assert bg.draw(0.2).size == (30, 60)
        assert pixel(bg.draw(0.2), 15, 30) == (127, 0, 0)

    def test_slideshow_crossfades_supplied_images(self, image_files):
        options = VideoOptions(
            background="slideshow", background_images=image_files, image_overlay_opacity=0.0
        )
        bg = build_background(options, "motivation", PALETTE, 30, 60)
        assert isinstance(bg, CrossfadeBackground)
        assert pixel(bg.draw(0.35), 15, 30) == (0, 255, 0)
        r, g, b = pixel(bg.draw(0.3), 15, 30)
        assert 100 < r < 155 and 100 < g < 155 and b == 0

    def test_slideshow_skips_unreadable_images(self, image_files, tmp_path):
        options = VideoOptions(
            background="slideshow",
            background_images=[str(tmp_path / "missing.png"), image_files[2]],
        )
        bg = build_background(options, "motivation", PALETTE, 30, 60)
        assert isinstance(bg, CrossfadeBackground)
        assert len(bg.images) == 1

    def test_slideshow_with_nothing_falls_back_to_gradient(self):
        options = VideoOptions(background="slideshow")
        bg = build_background(
            options, "motivation", PALETTE, 30, 60, image_provider=lambda t, w, h: None
        )
        assert bg.label == "gradient"

    def test_custom_with_failed_images_is_black(self, tmp_path):
        options = VideoOptions(background="custom", background_images=[str(tmp_path / "nope.jpg")])
        bg = build_background(options, "motivation", PALETTE, 30, 60)
        assert bg.label == "black"
        assert pixel(bg.draw(0.5)) == (0, 0, 0)

    def test_custom_without_images_is_gradient(self):
        bg = build_background(VideoOptions(background="custom"), "motivation", PALETTE, 30, 60)
        assert bg.label == "gradient"

    def test_custom_images_are_cover_resized(self, image_files):
        options = VideoOptions(background="custom", background_images=image_files[:1])
        bg = build_background(options, "motivation", PALETTE, 90, 90)
        assert bg.label == "custom"
        assert bg.draw(0.0).size == (90, 90)
