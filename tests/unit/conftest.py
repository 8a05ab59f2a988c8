"""Fixtures shared by the unit tests."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from crossrun.core.protocols import Logger
from crossrun.devices.base import Credential, Target

from fakes import FakeTime


@pytest.fixture
def logger():
    return Mock(spec=Logger)


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def target():
    return Target(name="dev-box", address="192.168.3.53",
                  credential=Credential(Path("/keys/release/id_ed25519")))
