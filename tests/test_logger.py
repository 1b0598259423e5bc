import io
import logging

import pytest

from lnpredict.utils import get_logger


@pytest.fixture
def package_stream():
    """Redirect the package handler into a buffer for one test."""
    get_logger("lnpredict")
    handler = logging.getLogger("lnpredict").handlers[0]
    buffer = io.StringIO()
    old = handler.setStream(buffer)
    yield buffer
    handler.setStream(old)


def test_single_handler_on_package_logger():
    child = get_logger("lnpredict.some.module")
    get_logger("lnpredict.other")
    assert child.handlers == []
    assert len(logging.getLogger("lnpredict").handlers) == 1


def test_module_message_written_once(package_stream):
    get_logger("lnpredict")
    get_logger("lnpredict.pipeline").info("ranking %d genes", 42)
    lines = package_stream.getvalue().splitlines()
    assert len(lines) == 1
    assert "lnpredict.pipeline - INFO - ranking 42 genes" in lines[0]
