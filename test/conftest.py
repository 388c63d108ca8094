import numpy as np
import pytest
from scipy import ndimage


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow running test")


@pytest.fixture(scope="session")
def test_log_path(tmp_path_factory):
    return str(tmp_path_factory.mktemp("logs") / "mdscope_test.log")


@pytest.fixture
def make_zstack():
    """Factory for (rows, cols, slices) uint16 stacks sharpest at slice `best` (0-based).

    Other slices are blurred in proportion to their distance from `best`.
    """

    def _make(n_slices, best, shape=(32, 32), seed=0):
        rng = np.random.default_rng(seed)
        pattern = 1000.0 + 1000.0 * rng.random(shape)
        stack = np.empty((*shape, n_slices), dtype=np.uint16)
        for s in range(n_slices):
            sigma = 1.5 * abs(s - best)
            image = ndimage.gaussian_filter(pattern, sigma) if sigma else pattern
            stack[..., s] = np.round(image).astype(np.uint16)
        return stack

    return _make
