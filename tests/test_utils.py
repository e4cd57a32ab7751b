import numpy as np
import pytest

from pulsesync.utils.signals import iqr, median, tukey_mask, weighted_median
from pulsesync.utils.windows import covering_windows, iter_windows


def test_median_and_iqr():
    assert median([]) == 0.0
    assert median([3, 1, 2]) == 2.0
    assert iqr([5.0]) == 0.0
    assert iqr([1, 2, 3, 4, 5]) == pytest.approx(2.0)


def test_tukey_mask_rejects_outlier():
    mask = tukey_mask([100, 101, 99, 100, 102, 180])
    assert mask.tolist() == [True, True, True, True, True, False]


def test_tukey_mask_keeps_small_sets():
    assert tukey_mask([1, 500, 3]).all()


def test_weighted_median():
    assert weighted_median([1, 2, 3], [1, 1, 1]) == 2.0
    assert weighted_median([1, 2, 3], [0.5, 0.5, 3]) == 3.0
    assert weighted_median([1, 2], [1, 1]) == pytest.approx(1.5)
    assert weighted_median([4, 8], [0, 0]) == pytest.approx(6.0)
    with pytest.raises(ValueError):
        weighted_median([1, 2], [1])


def test_iter_windows():
    wins = list(iter_windows(range(10), 4, 3))
    assert [(w.start, w.end) for w in wins] == [(0, 4), (3, 7), (6, 10)]
    with pytest.raises(ValueError):
        list(iter_windows(range(3), 4))
    with pytest.raises(ValueError):
        list(iter_windows(range(3), 0))


def test_covering_windows_short_series():
    wins = covering_windows(50, 100, 20)
    assert [(w.start, w.end) for w in wins] == [(0, 50)]
    assert covering_windows(0, 10, 5) == []


def test_covering_windows_aligns_tail():
    wins = covering_windows(2997, 2000, 1000)
    assert [(w.start, w.end) for w in wins] == [(0, 2000), (997, 2997)]
    assert all(w.width == 2000 for w in wins)


def test_covering_windows_exact_fit():
    wins = covering_windows(3000, 2000, 1000)
    assert [(w.start, w.end) for w in wins] == [(0, 2000), (1000, 3000)]
    assert np.all(np.diff([w.start for w in wins]) > 0)


def test_aux_window_mean():
    from pulsesync.types import AuxMetrics

    aux = AuxMetrics(face_motion_px=np.arange(10, dtype=float), imu_rms_g=0.03)
    assert aux.window_mean("face_motion_px", 0, 4) == pytest.approx(1.5)
    assert aux.window_mean("face_motion_px", 20, 30) is None
    assert aux.window_mean("imu_rms_g", 0, 4) == pytest.approx(0.03)
    assert aux.window_mean("finger_saturation", 0, 4) is None


def test_get_logger_keeps_one_handler():
    import io
    import logging

    from pulsesync.utils.logging import get_logger

    first, second = io.StringIO(), io.StringIO()
    log = get_logger("pulsesync.test", level=logging.DEBUG, stream=first)
    log = get_logger("pulsesync.test", level=logging.DEBUG, fmt="%(message)s", stream=second)
    log.propagate = False
    log.debug("hello")
    assert len(log.handlers) == 1
    assert first.getvalue() == ""
    assert second.getvalue() == "hello\n"


def test_get_logger_after_stream_closed(tmp_path):
    import logging

    from pulsesync.utils.logging import get_logger

    path = tmp_path / "log.txt"
    with path.open("w") as fh:
        get_logger("pulsesync.closed", stream=fh)
    log = get_logger("pulsesync.closed", level=logging.WARNING, fmt="%(message)s")
    assert len(log.handlers) == 1
    assert log.handlers[0].stream is not fh
