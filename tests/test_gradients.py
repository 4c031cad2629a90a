"""Tests for gradients.py — cube-centre gradients in the support region."""
import numpy as np
import pytest

from rsfish.field import ScalarField
from rsfish.gradients import cube_gradients, sample_gradients
from rsfish.radial import fit_radial_symmetry
from tests.conftest import make_blob


def test_cube_gradients_linear_ramp():
    ys, xs = np.mgrid[0:5, 0:5]
    patch = 2.0 * xs - 3.0 * ys
    gy, gx = cube_gradients(patch.astype(np.float64))
    assert gy.shape == gx.shape == (4, 4)
    np.testing.assert_allclose(gx, 2.0)
    np.testing.assert_allclose(gy, -3.0)


def test_sample_count_and_positions():
    img = np.zeros((20, 20))
    make_blob(img, (10, 10), 1.5)
    samples = sample_gradients(ScalarField(img), (10, 10), radius=3)
    # 6×6 cube centres, none of them at the spot centre
    assert len(samples) == 36
    assert samples.positions.min() == pytest.approx(7.5)
    assert samples.positions.max() == pytest.approx(12.5)
    np.testing.assert_allclose(samples.origins + 0.5, samples.positions)


def test_gradients_point_towards_bright_centre():
    img = np.zeros((20, 20))
    make_blob(img, (10, 10), 1.5)
    samples = sample_gradients(ScalarField(img), (10, 10), radius=2)
    to_centre = np.array([10.0, 10.0]) - samples.positions
    cos = np.sum(to_centre * samples.gradients, axis=1)
    assert np.all(cos > 0)
    np.testing.assert_allclose(samples.weights, np.linalg.norm(samples.gradients, axis=1))


def test_flat_region_yields_no_samples():
    samples = sample_gradients(ScalarField(np.full((10, 10, 10), 4.0)), (5, 5, 5), radius=2)
    assert len(samples) == 0
    assert samples.positions.shape == (0, 3)


def test_samples_use_mirror_policy_at_border():
    img = np.zeros((12, 12))
    make_blob(img, (0, 6), 1.5)
    samples = sample_gradients(ScalarField(img), (0, 6), radius=2)
    assert samples.positions[:, 0].min() == pytest.approx(-1.5)
    position, _ = fit_radial_symmetry(samples)
    np.testing.assert_allclose(position, [0.0, 6.0], atol=1e-9)


def test_symmetric_spot_is_recovered_exactly():
    img = np.zeros((16, 24, 24))
    make_blob(img, (8, 12, 11), 1.5)
    samples = sample_gradients(ScalarField(img), (8, 12, 11), radius=3)
    assert len(samples) == 216
    position, residual = fit_radial_symmetry(samples)
    np.testing.assert_allclose(position, [8, 12, 11], atol=1e-9)
    assert residual < 0.1


def test_anisotropy_maps_axis0_into_isotropic_frame():
    img = np.zeros((16, 24, 24))
    anisotropy = 2.0
    make_blob(img, (8, 12, 12), (1.5 / anisotropy, 1.5, 1.5))
    samples = sample_gradients(ScalarField(img), (8, 12, 12), radius=2, anisotropy=anisotropy)
    np.testing.assert_allclose(
        samples.positions[:, 0], (samples.origins[:, 0] + 0.5) * anisotropy
    )
    position, _ = fit_radial_symmetry(samples)
    np.testing.assert_allclose(samples.to_voxel(position), [8, 12, 12], atol=1e-9)
