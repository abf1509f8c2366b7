import pytest

from oarigin.config.settings import settings
from oarigin.services import room_store
from oarigin.services.ws_manager import WS


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Every test writes its rooms and profiles under a fresh directory."""
    monkeypatch.setattr(settings, "DATA_DIR", str(tmp_path / "data"))
    room_store.reset_registry()
    WS.rooms.clear()
    WS.ws_to_member.clear()
    yield
    room_store.reset_registry()
