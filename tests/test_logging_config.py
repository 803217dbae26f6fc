import logging

import pytest

from exceptions import RuleDataError, RulesEngineError, SessionStateError, TemplateRenderError, UnknownRuleKeyError
from logging_config import LOG_FILE_NAME, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_log_file(restore_root_logger, tmp_path):
    setup_logging(level=logging.DEBUG, log_dir=tmp_path / "logs", console_enabled=False)
    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1

    logging.getLogger("step_planner").info("planned %d steps", 6)
    for handler in restore_root_logger.handlers:
        handler.flush()
    text = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert "| step_planner | INFO | planned 6 steps" in text


def test_setup_logging_console_only(restore_root_logger):
    setup_logging(level=logging.WARNING)
    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.StreamHandler)

    setup_logging(level=logging.WARNING)
    assert len(restore_root_logger.handlers) == 1


# =============================================================================
# EXCEPTIONS
# =============================================================================

def test_exception_hierarchy():
    for cls in (RuleDataError, UnknownRuleKeyError, TemplateRenderError, SessionStateError):
        assert issubclass(cls, RulesEngineError)
    assert issubclass(UnknownRuleKeyError, RuleDataError)
    assert issubclass(TemplateRenderError, RuleDataError)


def test_exception_message_includes_details():
    assert str(SessionStateError("Already at the first step")) == "Already at the first step"
    error = UnknownRuleKeyError("feat", "telekinetic")
    assert str(error) == "Unknown feat: telekinetic (table=feat, key=telekinetic)"
    assert error.details == {"table": "feat", "key": "telekinetic"}
