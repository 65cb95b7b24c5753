"""Tests for fractal/driver.py: column scan, fatal abort, anomaly guard, cancel."""

import pytest

from fractal.coloring import WHITE, RGB
from fractal.compute import FractalViewport, RenderConfig
from fractal.driver import (
    OUTCOME_ANOMALY_HALTED, OUTCOME_CANCELLED, OUTCOME_COMPLETED,
    OUTCOME_FATAL, OUTCOME_PENDING, OUTCOME_RUNNING,
    ColumnReport, RenderDriver,
)
from fractal.formula import compile_formula
from fractal.status import (
    AnomalyThresholdExceeded, FatalAborted, RenderCompleted,
)


class RecordingSink:
    """PixelSink that remembers every write in order."""

    def __init__(self):
        self.writes: list[tuple[int, int, RGB]] = []

    def set_pixel(self, x, y, color):
        self.writes.append((x, y, color))


class RecordingStatus:
    """StatusChannel that keeps every event."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


def make_driver(source, width=4, height=4, **config_kwargs):
    sink = RecordingSink()
    status = RecordingStatus()
    driver = RenderDriver(
        FractalViewport(width, height),
        RenderConfig(**config_kwargs),
        compile_formula(source),
        sink,
        status,
    )
    return driver, sink, status


# Every pixel is NaN on the first iterate
ALL_NAN = "constant(0, 0) / 0"


class TestCompletedRender:
    """A well-behaved formula scans every pixel once."""

    def test_every_pixel_written_once(self):
        driver, sink, status = make_driver("Z*Z + C", width=5, height=3)
        assert driver.run() == OUTCOME_COMPLETED
        assert len(sink.writes) == 15
        assert len({(x, y) for x, y, _ in sink.writes}) == 15

    def test_column_major_order(self):
        driver, sink, _ = make_driver("Z*Z + C", width=3, height=2)
        driver.run()
        assert [(x, y) for x, y, _ in sink.writes] == [
            (0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1),
        ]

    def test_yields_once_per_column(self):
        driver, _, _ = make_driver("Z*Z + C", width=3, height=2)
        reports = list(driver.columns())
        assert reports == [ColumnReport(0, 0, False), ColumnReport(1, 0, False), ColumnReport(2, 0, False)]

    def test_completion_event(self):
        driver, _, status = make_driver("Z*Z + C", width=3, height=2)
        driver.run()
        assert status.events == [RenderCompleted(columns=3, max_anomalies=0)]

    def test_center_is_inside_color(self):
        driver, sink, _ = make_driver("Z*Z + C", width=4, height=4)
        driver.run()
        colors = {(x, y): color for x, y, color in sink.writes}
        assert colors[(2, 2)] == WHITE

    def test_outcome_progression(self):
        driver, _, _ = make_driver("Z*Z + C", width=2, height=2)
        assert driver.outcome == OUTCOME_PENDING
        scan = driver.columns()
        next(scan)
        assert driver.outcome == OUTCOME_RUNNING
        assert driver.columns_done == 1
        list(scan)
        assert driver.outcome == OUTCOME_COMPLETED
        assert driver.finished

    def test_renders_only_once(self):
        driver, _, _ = make_driver("Z*Z + C", width=2, height=2)
        driver.run()
        with pytest.raises(RuntimeError):
            driver.columns()


class TestFatalAbort:
    """A non-complex result aborts the whole render."""

    def test_fatal_on_first_pixel(self):
        driver, sink, status = make_driver("1")
        assert driver.run() == OUTCOME_FATAL
        assert sink.writes == []
        assert len(status.events) == 1
        event = status.events[0]
        assert isinstance(event, FatalAborted)
        assert (event.x, event.y) == (0, 0)

    def test_no_pixel_written_after_fatal(self):
        """Columns 0 and 1 have negative real parts; column 2 is at real 0."""
        driver, sink, status = make_driver("Z if Z.real < 0 else 1", width=4, height=4)
        assert driver.run() == OUTCOME_FATAL
        assert len(sink.writes) == 8
        assert max(x for x, _, _ in sink.writes) == 1
        assert status.events[-1] == FatalAborted(
            "Formula returned a number, expected a complex number", 2, 0,
        )

    def test_no_completion_event(self):
        driver, _, status = make_driver("1")
        driver.run()
        assert not any(isinstance(e, RenderCompleted) for e in status.events)


class TestAnomalyGuard:
    """Consecutive-NaN guard."""

    def test_guard_off_skips_nan_pixels(self):
        driver, sink, status = make_driver(ALL_NAN, width=3, height=300)
        assert driver.run() == OUTCOME_COMPLETED
        assert sink.writes == []
        assert driver.max_anomalies == 300
        assert status.events == [RenderCompleted(columns=3, max_anomalies=300)]

    def test_column_halts_at_257(self):
        driver, _, status = make_driver(
            ALL_NAN, width=3, height=300, anomaly_guard_enabled=True,
        )
        scan = driver.columns()
        report = next(scan)
        assert report == ColumnReport(0, 257, True)
        assert status.events == [AnomalyThresholdExceeded(0, 257, False)]

    def test_two_columns_halt_render(self):
        driver, _, status = make_driver(
            ALL_NAN, width=3, height=300, anomaly_guard_enabled=True,
        )
        reports = list(driver.columns())
        assert driver.outcome == OUTCOME_ANOMALY_HALTED
        assert reports == [ColumnReport(0, 257, True)]
        assert status.events == [
            AnomalyThresholdExceeded(0, 257, False),
            AnomalyThresholdExceeded(1, 257, True),
        ]

    def test_threshold_not_exceeded(self):
        """Exactly 256 consecutive NaNs is still within the limit."""
        driver, _, status = make_driver(
            ALL_NAN, width=2, height=256, anomaly_guard_enabled=True,
        )
        assert driver.run() == OUTCOME_COMPLETED
        assert status.events == [RenderCompleted(columns=2, max_anomalies=256)]

    def test_custom_threshold(self):
        driver, _, _ = make_driver(
            ALL_NAN, width=3, height=10,
            anomaly_guard_enabled=True, anomaly_threshold=4,
        )
        assert driver.run() == OUTCOME_ANOMALY_HALTED
        assert driver.max_anomalies == 5

    def test_run_is_reset_by_valid_pixel(self):
        """Only the real axis row is valid; it splits each column into runs of 10 and 9."""
        source = "Z*Z + C if Z.imag == 0 else constant(0, 0) / 0"
        driver, sink, _ = make_driver(
            source, width=2, height=20,
            anomaly_guard_enabled=True, anomaly_threshold=12,
        )
        assert driver.run() == OUTCOME_COMPLETED
        assert driver.max_anomalies == 10
        assert [(x, y) for x, y, _ in sink.writes] == [(0, 10), (1, 10)]


class TestCancel:
    """Cooperative cancellation between columns."""

    def test_cancel_mid_render(self):
        driver, sink, status = make_driver("Z*Z + C", width=4, height=3)
        scan = driver.columns()
        next(scan)
        driver.cancel()
        assert driver.outcome == OUTCOME_CANCELLED
        assert len(sink.writes) == 3
        assert status.events == []
        with pytest.raises(StopIteration):
            next(scan)

    def test_cancel_before_start(self):
        driver, sink, _ = make_driver("Z*Z + C")
        driver.cancel()
        assert driver.outcome == OUTCOME_CANCELLED
        assert sink.writes == []

    def test_cancel_after_completion_keeps_outcome(self):
        driver, _, _ = make_driver("Z*Z + C", width=2, height=2)
        driver.run()
        driver.cancel()
        assert driver.outcome == OUTCOME_COMPLETED
