import random

import numpy as np
import pytest

SEED = 42


def pytest_configure():
  random.seed(SEED)
  np.random.seed(SEED)


@pytest.fixture
def rng():
  return np.random.default_rng(SEED)
