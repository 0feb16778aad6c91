import sys
import os
import shutil
import pytest


def pytest_configure(config):
    # Ensure 'src' directory is on sys.path so 'gpbridge' and 'driver' import
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    src_path = os.path.join(repo_root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)

    config.addinivalue_line("markers", "gnuplot: test requires a gnuplot executable")


def pytest_collection_modifyitems(config, items):
    if shutil.which("gnuplot") is not None:
        return
    skip = pytest.mark.skip(reason="gnuplot executable not found")
    for item in items:
        if "gnuplot" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def options(monkeypatch):
    """Fresh dry-mode options for every test, and no session left behind."""
    from gpbridge.session import manager
    from gpbridge.utils import config

    fresh = config.Options(dry=True)
    monkeypatch.setattr(config, "options", fresh)
    yield fresh
    manager.quit_all()


@pytest.fixture
def live_options(options):
    """Options using a real gnuplot process."""
    options.dry = False
    options.term = "unknown"
    return options
