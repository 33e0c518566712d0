import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1] / "parley"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class StubWebSocket:
    """Records frames sent to it; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.scope = {"path": "/ws"}
        self.sent: list[str] = []
        self.fail = fail
        self.accepted = False
        self.close_code = None

    async def accept(self, headers=None):
        self.accepted = True

    async def send_text(self, message: str):
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.sent.append(message)

    async def close(self, code: int = 1000):
        self.close_code = code


@pytest.fixture()
def stub_ws():
    return StubWebSocket


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "db.json"
