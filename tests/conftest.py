import time

import pytest
from PySide6.QtCore import QCoreApplication


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


def spin(ms):
    """Run the Qt event loop for roughly ``ms`` milliseconds."""
    deadline = time.monotonic() + ms / 1000.0
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.002)


def wait_until(predicate, timeout_ms=3000):
    deadline = time.monotonic() + timeout_ms / 1000.0
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.002)
    QCoreApplication.processEvents()
    return bool(predicate())


@pytest.fixture
def wait(qapp):
    return wait_until


@pytest.fixture
def pump(qapp):
    return spin
