import numpy as np
import pytest

from mdscope.correct import RETURN_METHOD, Parfocal, focus_window, refocus
from mdscope.util import FOCUS_METHOD, best_focus_index, focus_curve


def buffer(*stacks_by_channel):
    """(rows, cols, S, C, 1, 1) buffer from one stack per channel."""
    return np.stack(stacks_by_channel, axis=3)[..., np.newaxis, np.newaxis]


@pytest.mark.parametrize(
    "method", [FOCUS_METHOD.GRADIENT, FOCUS_METHOD.STDEV, FOCUS_METHOD.SOBEL]
)
def test_best_focus(make_zstack, method):
    stack = make_zstack(7, best=4)
    curve = focus_curve(stack, method)
    assert curve.shape == (7,)
    assert curve.max() == pytest.approx(1.0)
    assert best_focus_index(stack, method) == 4


def test_inverse_metric_prefers_low_contrast(make_zstack):
    assert best_focus_index(make_zstack(5, best=2), FOCUS_METHOD.GRADIENT_INV) in (0, 4)


def test_inverse_metric_ranks_flat_slice_best(make_zstack):
    stack = make_zstack(5, best=2).astype(float)
    stack[..., 3] = 1500.0
    curve = focus_curve(stack, FOCUS_METHOD.STDEV_INV)
    assert curve[3] == 0.0
    assert np.all(curve[[0, 1, 2, 4]] < 0)
    assert best_focus_index(stack, FOCUS_METHOD.STDEV_INV) == 3


def test_invalid_focus_method(make_zstack):
    with pytest.raises(ValueError):
        focus_curve(make_zstack(3, best=1), "laplace")


def test_focus_window():
    assert focus_window(2, 1, 5) == (1, 3, True)
    assert focus_window(0, 1, 5) == (0, 2, False)
    assert focus_window(4, 1, 5) == (2, 4, False)
    assert focus_window(2, 2, 5) == (0, 4, True)
    assert focus_window(3, 0, 5) == (3, 3, True)
    with pytest.raises(ValueError):
        focus_window(2, 3, 5)


def test_refocus_average(make_zstack):
    stack = make_zstack(5, best=2)
    result = refocus(buffer(stack), FOCUS_METHOD.GRADIENT, 1, RETURN_METHOD.AVERAGE)
    assert result.images.shape == (32, 32, 1, 1, 1, 1)
    assert result.images.dtype == np.uint16
    expected = np.round(stack[:, :, 1:4].mean(axis=2)).astype(np.uint16)
    np.testing.assert_array_equal(result.images[:, :, 0, 0, 0, 0], expected)
    assert result.best_focus[0, 0, 0] == 2
    assert result.focus_valid.all()


def test_refocus_all(make_zstack):
    stack = make_zstack(5, best=2)
    result = refocus(buffer(stack), FOCUS_METHOD.GRADIENT, 1, RETURN_METHOD.ALL)
    assert result.images.shape == (32, 32, 3, 1, 1, 1)
    np.testing.assert_array_equal(result.images[:, :, :, 0, 0, 0], stack[:, :, 1:4])


def test_refocus_edge_is_invalid(make_zstack):
    stack = make_zstack(5, best=0)
    result = refocus(buffer(stack), FOCUS_METHOD.GRADIENT, 1, RETURN_METHOD.ALL)
    np.testing.assert_array_equal(result.images[:, :, :, 0, 0, 0], stack[:, :, 0:3])
    assert not result.focus_valid[0, 0, 0]


def test_refocus_radius_too_large(make_zstack):
    with pytest.raises(ValueError):
        refocus(buffer(make_zstack(3, best=1)), FOCUS_METHOD.GRADIENT, 2)
    with pytest.raises(ValueError):
        refocus(buffer(make_zstack(3, best=1)), FOCUS_METHOD.GRADIENT, 0, "median")


def test_parfocal(make_zstack):
    master = make_zstack(5, best=1, seed=0)
    other = make_zstack(5, best=4, seed=1)
    images = buffer(master, other)

    result = refocus(
        images, FOCUS_METHOD.GRADIENT, 1, RETURN_METHOD.ALL, Parfocal(0, [0, 1])
    )
    # the second channel follows the master's best slice plus its offset
    assert list(result.best_focus[:, 0, 0]) == [1, 2]
    assert result.focus_valid.all()
    np.testing.assert_array_equal(result.images[:, :, :, 1, 0, 0], other[:, :, 1:4])

    result = refocus(
        images, FOCUS_METHOD.GRADIENT, 1, RETURN_METHOD.ALL, Parfocal(0, [0, 3])
    )
    assert list(result.focus_valid[:, 0, 0]) == [True, False]

    with pytest.raises(ValueError):
        refocus(images, FOCUS_METHOD.GRADIENT, 1, parfocal=Parfocal(0, [0]))


def test_parfocal_ignored_for_single_channel(make_zstack):
    stack = make_zstack(5, best=3)
    result = refocus(
        buffer(stack), FOCUS_METHOD.GRADIENT, 1, parfocal=Parfocal(0, [2])
    )
    assert result.best_focus[0, 0, 0] == 3
