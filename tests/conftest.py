import logging
import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import mintforge`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


CREATOR = "0x" + "a1" * 20
SECOND_CREATOR = "0x" + "b2" * 20
ALICE = "0x" + "c3" * 20
BOB = "0x" + "d4" * 20


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless MINTFORGE_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('MINTFORGE_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set MINTFORGE_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch):
    """Reset the config singleton and detach CLI log handlers between tests."""
    from mintforge.config import get_config_manager

    for name in list(os.environ):
        if name.startswith("MINTFORGE_"):
            monkeypatch.delenv(name)
    get_config_manager().reset()
    yield
    get_config_manager().reset()
    root = logging.getLogger("mintforge")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


@pytest.fixture
def engine():
    """Ten-item collection owned by CREATOR, public price 5."""
    from mintforge.engine import IssuanceEngine
    from mintforge.phases import PriceTable

    return IssuanceEngine(
        deployer=CREATOR,
        max_supply=10,
        prices=PriceTable(privileged=1, allow_listed=3, public=5),
        name="Test Collection",
        symbol="TST",
    )
