from __future__ import annotations

import pytest

from tests.fakes import MAP_JSON, FakeSession


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession().mock_response("Debugger.enable").mock_response("Debugger.disable")


@pytest.fixture()
def map_json() -> str:
    return MAP_JSON
