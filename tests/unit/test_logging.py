import logging

from meter.logging import ROOT_LOGGER, get_logger


def test_loggers_share_one_configured_parent():
    a = get_logger("alpha")
    b = get_logger("beta")
    root = logging.getLogger(ROOT_LOGGER)

    assert a.name == "meter.alpha"
    assert a.parent is root and b.parent is root
    assert a.handlers == [] and b.handlers == []
    assert len(root.handlers) >= 1
    assert root.propagate is False

    handler_count = len(root.handlers)
    get_logger("gamma")
    assert len(root.handlers) == handler_count
