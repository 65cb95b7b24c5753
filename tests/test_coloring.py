"""Tests for fractal/coloring.py: tri-band LUT, color mapping, pixel buffer, QImage."""

import numpy as np
import pytest

from fractal.coloring import (
    BACKGROUND, BAND_PERIOD, RGB, WHITE,
    ColorMapper, PixelBuffer,
    band_color, build_band_lut, numpy_to_qimage, scaled_step,
)
from fractal.compute import BOUNDED, Anomalous, Diverged, Fatal


class TestBuildBandLut:
    """Test tri-band LUT construction."""

    def test_shape(self):
        lut = build_band_lut()
        assert lut.shape == (BAND_PERIOD, 3)
        assert lut.dtype == np.uint8

    def test_starts_black(self):
        np.testing.assert_array_equal(build_band_lut()[0], [0, 0, 0])

    def test_red_band(self):
        lut = build_band_lut()
        np.testing.assert_array_equal(lut[128], [128, 0, 0])
        np.testing.assert_array_equal(lut[255], [255, 0, 0])

    def test_green_band(self):
        lut = build_band_lut()
        np.testing.assert_array_equal(lut[256], [255, 0, 0])
        np.testing.assert_array_equal(lut[400], [255, 144, 0])
        np.testing.assert_array_equal(lut[511], [255, 255, 0])

    def test_blue_band(self):
        lut = build_band_lut()
        np.testing.assert_array_equal(lut[600], [255, 255, 88])
        np.testing.assert_array_equal(lut[767], [255, 255, 255])

    def test_channels_monotonic(self):
        lut = build_band_lut().astype(int)
        assert np.all(np.diff(lut, axis=0) >= 0)


class TestScaledStep:
    """Test the step -> band index scaling."""

    def test_first_step(self):
        assert scaled_step(0, 20) == 1

    def test_last_step(self):
        assert scaled_step(19, 20) == 243

    def test_custom_scale(self):
        assert scaled_step(10, 20, scale=1000) == 501


class TestBandColor:
    """Test periodic color lookup."""

    def test_periodic(self):
        for n in (0, 1, 100, 300, 700):
            assert band_color(n) == band_color(n + BAND_PERIOD)
            assert band_color(n) == band_color(n + 5 * BAND_PERIOD)

    def test_value(self):
        assert band_color(1) == RGB(1, 0, 0)
        assert band_color(BAND_PERIOD + 300) == RGB(255, 44, 0)


class TestColorMapper:
    """Test classification -> color."""

    def test_bounded_is_inside_color(self):
        assert ColorMapper(20).color_for(BOUNDED) == WHITE

    def test_custom_inside_color(self):
        black = RGB(0, 0, 0)
        assert ColorMapper(20, inside_color=black).color_for(BOUNDED) == black

    def test_diverged(self):
        mapper = ColorMapper(20)
        assert mapper.color_for(Diverged(0)) == RGB(1, 0, 0)
        assert mapper.color_for(Diverged(19)) == RGB(243, 0, 0)

    def test_deterministic(self):
        a = ColorMapper(50)
        b = ColorMapper(50)
        for step in range(50):
            assert a.color_for(Diverged(step)) == b.color_for(Diverged(step))

    def test_no_color_for_anomalous_or_fatal(self):
        mapper = ColorMapper(20)
        assert mapper.color_for(Anomalous(3)) is None
        assert mapper.color_for(Fatal("boom")) is None

    def test_invalid_budget(self):
        with pytest.raises(ValueError):
            ColorMapper(0)


class TestRGB:
    """Test the RGB tuple."""

    def test_hex(self):
        assert RGB(255, 0, 16).hex == "#ff0010"
        assert WHITE.hex == "#ffffff"


class TestPixelBuffer:
    """Test the numpy pixel sink."""

    def test_initial_background(self):
        buf = PixelBuffer(4, 3)
        assert buf.pixels.shape == (3, 4, 4)
        assert buf.get_pixel(3, 2) == BACKGROUND

    def test_set_get(self):
        buf = PixelBuffer(4, 3)
        buf.set_pixel(1, 2, RGB(10, 20, 30))
        assert buf.get_pixel(1, 2) == RGB(10, 20, 30)

    def test_bgra_layout(self):
        buf = PixelBuffer(2, 2)
        buf.set_pixel(0, 1, RGB(10, 20, 30))
        np.testing.assert_array_equal(buf.pixels[1, 0], [30, 20, 10, 255])

    def test_clear(self):
        buf = PixelBuffer(2, 2)
        buf.set_pixel(0, 0, WHITE)
        buf.clear()
        assert buf.get_pixel(0, 0) == BACKGROUND

    def test_to_qimage(self):
        buf = PixelBuffer(5, 3)
        buf.set_pixel(4, 2, RGB(10, 20, 30))
        image = buf.to_qimage()
        assert image.width() == 5
        assert image.height() == 3
        color = image.pixelColor(4, 2)
        assert (color.red(), color.green(), color.blue()) == (10, 20, 30)


class TestNumpyToQimage:
    """Test QImage construction from numpy array."""

    def test_creates_valid_qimage(self):
        argb = np.zeros((8, 8, 4), dtype=np.uint8)
        argb[:, :, 3] = 255  # alpha
        image = numpy_to_qimage(argb)
        assert image.width() == 8
        assert image.height() == 8
        assert not image.isNull()

    def test_gc_safety(self):
        """QImage should hold reference to numpy array."""
        argb = np.zeros((4, 4, 4), dtype=np.uint8)
        image = numpy_to_qimage(argb)
        assert hasattr(image, '_numpy_ref')
        assert image._numpy_ref is not None
