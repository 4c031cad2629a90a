"""Tests for background.py — shell statistics and robust constant fit."""
import numpy as np
import pytest

from rsfish.background import estimate_background, robust_constant, shell_values
from rsfish.field import ScalarField


def ring_image(shell, center=(4, 4), radius=2, fill=10.0, peak=100.0):
    """9×9 image whose support box around ``center`` has ``shell`` on its border."""
    img = np.full((9, 9), fill)
    box = img[center[0] - radius:center[0] + radius + 1,
              center[1] - radius:center[1] + radius + 1]
    mask = np.ones(box.shape, dtype=bool)
    mask[1:-1, 1:-1] = False
    box[mask] = shell
    img[center] = peak
    return ScalarField(img)


def test_shell_excludes_interior():
    field = ring_image(np.arange(16, dtype=float))
    values = shell_values(field, (4, 4), 2)
    assert values.size == 16
    assert 100.0 not in values
    assert sorted(values.tolist()) == list(range(16))


def test_shell_3d_size():
    field = ScalarField(np.zeros((7, 7, 7)))
    assert shell_values(field, (3, 3, 3), 2).size == 5 ** 3 - 3 ** 3


def test_none_is_zero():
    field = ring_image(np.full(16, 10.0))
    assert estimate_background(field, (4, 4), 2, "none") == 0.0


@pytest.mark.parametrize("method", ["mean", "median", "ransac_mean", "ransac_median"])
def test_uniform_shell_ignores_bright_centre(method):
    field = ring_image(np.full(16, 10.0))
    assert estimate_background(field, (4, 4), 2, method, max_error=1.0) == pytest.approx(10.0)


def test_robust_mean_ignores_bright_shell_voxels():
    shell = np.full(16, 10.0)
    shell[[0, 5, 9]] = 50.0
    field = ring_image(shell)
    plain = estimate_background(field, (4, 4), 2, "mean")
    robust = estimate_background(field, (4, 4), 2, "ransac_mean",
                                 max_error=1.0, inlier_ratio=0.75)
    assert plain == pytest.approx(10.0 + 3 * 40.0 / 16)
    assert robust == pytest.approx(10.0)


def test_robust_median_uses_inliers_only():
    shell = np.array([10.0, 10.2, 10.4, 9.8, 9.6] * 3 + [80.0])
    field = ring_image(shell)
    value = estimate_background(field, (4, 4), 2, "ransac_median",
                                max_error=1.0, inlier_ratio=0.75)
    assert value == pytest.approx(10.0)


def test_robust_falls_back_to_plain_statistic():
    shell = np.arange(16) * 10.0
    field = ring_image(shell)
    assert robust_constant(shell, 1.0, 0.75) is None
    value = estimate_background(field, (4, 4), 2, "ransac_mean",
                                max_error=1.0, inlier_ratio=0.75)
    assert value == pytest.approx(shell.mean())


def test_robust_constant_prefers_tighter_cluster():
    # Two hypotheses with equal counts; the lower mean deviation wins.
    values = np.array([0.0, 0.0, 0.0, 5.0, 5.5, 6.0])
    inliers = robust_constant(values, 1.0, 0.5)
    np.testing.assert_array_equal(inliers, [0.0, 0.0, 0.0])


def test_border_peak_uses_mirrored_shell():
    img = np.zeros((5, 5))
    img[0, :] = 7.0
    field = ScalarField(img)
    # Row -1 mirrors row 1 (zeros); the shell around (0, 0) with r=1 has
    # rows -1 and 1 (six zeros) and columns -1 and 1 of row 0 (two 7s).
    values = shell_values(field, (0, 0), 1)
    assert sorted(values.tolist()) == [0.0] * 6 + [7.0] * 2


def test_unknown_method_raises():
    field = ring_image(np.full(16, 10.0))
    with pytest.raises(ValueError):
        estimate_background(field, (4, 4), 2, "mode")


def brute_force_constant(values, max_error, inlier_ratio):
    dev = np.abs(values[:, None] - values[None, :])
    inlier = dev <= max_error
    counts = inlier.sum(axis=1)
    mad = (dev * inlier).sum(axis=1) / counts
    best = np.lexsort((np.arange(values.size), mad, -counts))[0]
    if counts[best] < inlier_ratio * values.size:
        return None
    return values[inlier[best]]


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_robust_constant_matches_pairwise_search(seed):
    rng = np.random.default_rng(seed)
    values = np.concatenate([rng.normal(100.0, 0.02, 150), rng.uniform(100.0, 110.0, 40)])
    expected = brute_force_constant(values, 0.05, 0.5)
    got = robust_constant(values, 0.05, 0.5)
    np.testing.assert_array_equal(got, expected)


def test_robust_constant_handles_large_shells():
    # Shell of a 3-D box with support radius 20: 41^3 - 39^3 values.
    rng = np.random.default_rng(3)
    n = 41 ** 3 - 39 ** 3
    values = rng.normal(10.0, 0.01, n)
    values[:500] += 5.0
    inliers = robust_constant(values, 0.05, 0.75)
    assert inliers is not None
    assert inliers.size >= n - 500 - 50
    assert np.all(inliers < 11.0)
