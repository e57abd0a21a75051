import logging

import numpy as np
import pytest

from beambench.folds import FoldEndpoint, calculate
from beambench.logging_utils import apply_debug_logging, debug_log_call


def test_wrapped_solver_logs_entry_and_result(caplog):
    caplog.set_level(logging.DEBUG, logger="beambench.folds")
    calculate(FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((100.0, 100.0), 90.0), 200.0)
    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("Entering calculate (args=[") for m in messages)
    assert any(m.startswith("Exiting calculate -> FoldGeometry(") for m in messages)


def test_decorator_summarises_arrays_and_reraises(caplog):
    logger = logging.getLogger("beambench.tests.logging")
    caplog.set_level(logging.DEBUG, logger=logger.name)

    @debug_log_call(logger, name="explode")
    def explode(values):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        explode(np.zeros((3, 4)))
    text = caplog.text
    assert "ndarray(shape=(3, 4), dtype=float64)" in text
    assert "Exception in explode" in text


def test_apply_debug_logging_wraps_once():
    def helper():
        return 1

    helper.__module__ = "fake_module"
    namespace = {"__name__": "fake_module", "helper": helper}
    apply_debug_logging(namespace)
    wrapped = namespace["helper"]
    apply_debug_logging(namespace)
    assert namespace["helper"] is wrapped
    assert wrapped() == 1
