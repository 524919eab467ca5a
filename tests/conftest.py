from __future__ import annotations

import pytest

from ctrlglobal import log
from ctrlglobal.config import ENV_NAMES
from ctrlglobal.ctrl_global import CtrlGlobal
from ctrlglobal.infra.db.connection import Connection


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    # Unit tests must not see developer/CI settings
    for name in ENV_NAMES.values():
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(log, "_instance", None)
    yield
    CtrlGlobal.reset_instance()
    Connection.reset_instance()
