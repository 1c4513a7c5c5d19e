import os
import pathlib
import sys

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import certauth`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from certauth.config import ConfigManager  # noqa: E402
from certauth.registry import AuthorityRegistry, CallContext  # noqa: E402


OWNER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
STRANGER = "ST2PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
SUCCESSOR = "ST3PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless CERTAUTH_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('CERTAUTH_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set CERTAUTH_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Fresh configuration per test, with no CERTAUTH_* overrides or config files in reach."""
    for key in list(os.environ):
        if key.startswith("CERTAUTH_") and key != "CERTAUTH_RUN_SLOW":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def registry() -> AuthorityRegistry:
    return AuthorityRegistry(owner=OWNER)


def as_owner(clock: int = 100) -> CallContext:
    return CallContext(caller=OWNER, clock=clock)


def as_stranger(clock: int = 100) -> CallContext:
    return CallContext(caller=STRANGER, clock=clock)
