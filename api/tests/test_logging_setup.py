import logging
import logging.handlers
from types import SimpleNamespace

import pytest

from erp_persistence.logging_setup import LOG_FILE_NAME, setup_logging


@pytest.fixture
def clean_root():
    root = logging.getLogger()
    before = list(root.handlers), root.level
    yield root
    for h in root.handlers:
        if h not in before[0]:
            h.close()
    root.handlers[:] = before[0]
    root.setLevel(before[1])


def test_setup_logging_writes_under_data_root(tmp_path, clean_root):
    settings = SimpleNamespace(ERP_DATA_ROOT=tmp_path, LOG_LEVEL="debug", DB_ECHO=False)
    path = setup_logging(settings)

    assert path == tmp_path / "logs" / LOG_FILE_NAME
    assert clean_root.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    logging.getLogger("erp_persistence.test").info("hello")
    for h in clean_root.handlers:
        h.flush()
    assert "hello" in path.read_text(encoding="utf-8")


def test_setup_logging_is_idempotent(tmp_path, clean_root):
    settings = SimpleNamespace(ERP_DATA_ROOT=tmp_path, LOG_LEVEL="nonsense", DB_ECHO=True)
    setup_logging(settings)
    setup_logging(settings)

    rotating = [h for h in clean_root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(rotating) == 1
    assert clean_root.level == logging.INFO
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
