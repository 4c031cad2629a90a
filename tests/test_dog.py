"""Tests for dog.py — DoG response, anisotropic kernels and slab tiling."""
import numpy as np
import pytest

from rsfish.dog import DOG_K, compute_dog, dog_sigmas
from rsfish.errors import ConfigurationError
from rsfish.field import ScalarField
from tests.conftest import make_blob


def test_dog_sigmas_isotropic_2d():
    s1, s2 = dog_sigmas(1.5, 2)
    assert s1 == (1.5, 1.5)
    assert s2 == pytest.approx((1.5 * DOG_K, 1.5 * DOG_K))


def test_dog_sigmas_anisotropy_scales_axis0_only():
    s1, s2 = dog_sigmas(2.0, 3, anisotropy=2.0)
    assert s1 == (1.0, 2.0, 2.0)
    assert s2 == pytest.approx((DOG_K, 2.0 * DOG_K, 2.0 * DOG_K))


@pytest.mark.parametrize("sigma, anisotropy", [(0.0, 1.0), (-1.0, 1.0), (1.5, 0.0)])
def test_invalid_sigma_rejected(sigma, anisotropy):
    with pytest.raises(ConfigurationError):
        dog_sigmas(sigma, 3, anisotropy)


def test_dog_shape_and_read_only():
    img = np.zeros((20, 30))
    make_blob(img, (10, 15), 1.5)
    response = compute_dog(ScalarField(img), 1.5)
    assert response.shape == img.shape
    assert not response.data.flags.writeable


def test_dog_positive_maximum_at_bright_spot():
    img = np.zeros((12, 32, 32))
    make_blob(img, (6, 16, 16), 1.5)
    response = compute_dog(ScalarField(img), 1.5).data
    assert response.max() > 0
    assert np.unravel_index(np.argmax(response), response.shape) == (6, 16, 16)


def test_dog_of_constant_is_zero():
    response = compute_dog(ScalarField(np.full((16, 16), 3.0)), 1.5).data
    np.testing.assert_allclose(response, 0.0, atol=1e-12)


@pytest.mark.parametrize("workers", [2, 3, 4, 7])
def test_tiled_dog_matches_single_pass(workers):
    rng = np.random.default_rng(1)
    img = rng.normal(size=(16, 64, 40))
    field = ScalarField(img)
    single = compute_dog(field, 1.5, anisotropy=0.8).data
    tiled = compute_dog(field, 1.5, anisotropy=0.8, workers=workers).data
    np.testing.assert_array_equal(single, tiled)


def test_tiled_dog_more_workers_than_voxels():
    img = np.random.default_rng(2).normal(size=(3, 4))
    field = ScalarField(img)
    np.testing.assert_array_equal(
        compute_dog(field, 1.0).data,
        compute_dog(field, 1.0, workers=16).data,
    )
