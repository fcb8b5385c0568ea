import os
import sys

# Ensure the 'src' directory is in the python path so we can import kustomizepb
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

import pytest

from fakes import FakeAccessor, FakeApplier, FakeBuilder


@pytest.fixture
def accessor():
    return FakeAccessor()


@pytest.fixture
def builder():
    return FakeBuilder()


@pytest.fixture
def applier():
    return FakeApplier()
