"""Tests for log setup."""

import logging

from agent_logging import configure_component_loggers, setup_logging
from agent_logging.setup import COMPONENTS


def test_component_logger_writes_to_state_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("STATE_DIR", str(tmp_path))

    logger = setup_logging("Supremo_Test", console_output=False)
    logger.info("agenda consultada")
    for handler in logger.handlers:
        handler.flush()

    log_dir = tmp_path / "logs" / "supremo_test"
    files = list(log_dir.glob("supremo_test_*.log"))
    assert len(files) == 1
    assert "agenda consultada" in files[0].read_text(encoding="utf-8")
    assert logger.propagate is False

    for handler in logger.handlers:
        handler.close()


def test_repeated_setup_does_not_duplicate_handlers(tmp_path):
    setup_logging("supremo_dup", log_dir=str(tmp_path), console_output=True)
    logger = setup_logging("supremo_dup", log_dir=str(tmp_path), log_level="debug", console_output=True)

    assert len(logger.handlers) == 2
    assert logger.level == logging.DEBUG

    for handler in logger.handlers:
        handler.close()


def test_component_loggers_capture_module_records(tmp_path):
    configure_component_loggers(log_level="warning", log_dir=str(tmp_path))

    logging.getLogger("supremo_gateway.dispatcher").warning("falha ao concluir evento")
    logging.getLogger("integrations.board").info("detalhe ignorado")

    for component in COMPONENTS:
        logger = logging.getLogger(component)
        assert logger.level == logging.WARNING
        for handler in logger.handlers:
            handler.flush()

    gateway_log = next((tmp_path / "supremo_gateway").glob("*.log")).read_text(encoding="utf-8")
    assert "falha ao concluir evento" in gateway_log
    board_log = next((tmp_path / "integrations").glob("*.log")).read_text(encoding="utf-8")
    assert "detalhe ignorado" not in board_log

    for component in COMPONENTS:
        logger = logging.getLogger(component)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
