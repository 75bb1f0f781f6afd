from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure repo root is importable for all tests, regardless of install mode.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from matrix_kernels.gpu_device import create_device, create_pipeline_cache  # noqa: E402


@pytest.fixture(scope="session")
def device():
    gpu_device = create_device()
    if gpu_device is None:
        pytest.skip("no WGPU adapter available")
    return gpu_device


@pytest.fixture(scope="session")
def pipeline_cache(device):
    return create_pipeline_cache(device)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
