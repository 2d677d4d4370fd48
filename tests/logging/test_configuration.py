import logging

import pytest

from trustee_operator._core.actions.loggers import LogFormat, ObjectJsonFormatter, \
                                                   ObjectPrefixingJsonFormatter, \
                                                   ObjectPrefixingTextFormatter, \
                                                   ObjectTextFormatter, configure, make_formatter


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    others = {name: (logging.getLogger(name).propagate, list(logging.getLogger(name).handlers))
              for name in ['asyncio', 'aiohttp']}
    try:
        yield
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
        for name, (propagate, other_handlers) in others.items():
            logging.getLogger(name).propagate = propagate
            logging.getLogger(name).handlers[:] = other_handlers


def own_handlers():
    return [h for h in logging.getLogger().handlers if type(h).__name__ == '_OperatorStreamHandler']


@pytest.mark.parametrize('kwargs, level', [
    (dict(), logging.INFO),
    (dict(verbose=True), logging.DEBUG),
    (dict(debug=True), logging.DEBUG),
    (dict(quiet=True), logging.WARNING),
])
def test_levels(kwargs, level):
    configure(**kwargs)
    assert logging.getLogger().level == level


def test_reconfiguration_replaces_own_handlers():
    configure()
    configure(log_format=LogFormat.JSON)
    [handler] = own_handlers()
    assert isinstance(handler.formatter, ObjectJsonFormatter)


def test_low_level_loggers_are_silenced_unless_debugging():
    configure(verbose=True)
    assert not logging.getLogger('aiohttp').propagate
    configure(debug=True)
    assert logging.getLogger('aiohttp').propagate


@pytest.mark.parametrize('log_format, log_prefix, expected_cls', [
    (LogFormat.FULL, None, ObjectPrefixingTextFormatter),
    (LogFormat.FULL, True, ObjectPrefixingTextFormatter),
    (LogFormat.FULL, False, ObjectTextFormatter),
    (LogFormat.PLAIN, False, ObjectTextFormatter),
    (LogFormat.JSON, None, ObjectJsonFormatter),
    (LogFormat.JSON, False, ObjectJsonFormatter),
    (LogFormat.JSON, True, ObjectPrefixingJsonFormatter),
])
def test_formatter_selection(log_format, log_prefix, expected_cls):
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix)
    assert type(formatter) is expected_cls


def test_plain_format_is_used_for_texts():
    formatter = make_formatter(log_format=LogFormat.PLAIN, log_prefix=False)
    record = logging.LogRecord('x', logging.INFO, __file__, 1, "hello", (), None)
    assert formatter.format(record) == 'hello'
