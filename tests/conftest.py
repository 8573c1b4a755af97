import pytest

import diagnostics


@pytest.fixture(autouse=True)
def quiet_diagnostics(monkeypatch):
    monkeypatch.setattr(diagnostics, "summary_line", lambda: "diag")
