# tests/conftest.py
import numpy as np
import pytest

from seller_radar.adapters.model_io import ModelRegistry
from seller_radar.domain.vectors import TrainingDataset
from seller_radar.services.features import FEATURES

from fixtures.properties import separable_example


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def separable_dataset():
    """Balanced train (16) and validation (4) splits, both with both classes."""
    train = [separable_example(i, i % 2) for i in range(16)]
    validation = [separable_example(100 + i, i % 2) for i in range(4)]
    return TrainingDataset(train=train, validation=validation, feature_names=list(FEATURES))


@pytest.fixture
def registry(tmp_path):
    return ModelRegistry(tmp_path / "models", max_entries=3)
