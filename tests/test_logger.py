import logging

from PoseOptimization.logger import get_logger, set_level, setup_logger


def test_get_logger_is_namespaced():
    assert get_logger("optimization.pose_optimizer").name == "PoseOptimization.optimization.pose_optimizer"


def test_setup_logger_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "solver.log"
    logger = setup_logger("PoseOptimization.test_file", level="DEBUG",
                          log_file=str(log_file), console=False, force=True)
    logger.debug("hello solver")
    for handler in logger.handlers:
        handler.flush()
    assert "hello solver" in log_file.read_text()
    assert "[DEBUG]" in log_file.read_text()


def test_setup_logger_keeps_existing_handlers():
    first = setup_logger("PoseOptimization.test_keep", console=True, force=True)
    count = len(first.handlers)
    second = setup_logger("PoseOptimization.test_keep", console=True)
    assert second is first
    assert len(second.handlers) == count


def test_set_level():
    set_level("WARNING")
    assert logging.getLogger("PoseOptimization").level == logging.WARNING
    set_level("INFO")
