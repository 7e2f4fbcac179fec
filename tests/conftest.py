import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for `import nebubot`
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from nebubot.models import close_db, init_db  # noqa: E402


@pytest.fixture
def db(tmp_path):
    database = init_db(str(tmp_path / "test.db"))
    yield database
    close_db()


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as asyncio")
