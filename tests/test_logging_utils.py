import logging

import numpy as np
import pytest

from fetshape import Affine, Reconstruction, Shape
from fetshape.logging_utils import _safe_repr, debug_log_call


def test_safe_repr_summarizes_domain_values():
    assert _safe_repr(np.zeros((100, 3))).startswith("ndarray(shape=(100, 3)")
    assert _safe_repr(Affine.identity()) == "Affine(identity)"
    assert _safe_repr(Affine.from_translation((1.0, 2.0, 3.0))) == "Affine(translation=(1, 2, 3))"
    shape = Shape(Reconstruction())
    assert _safe_repr(shape) == "Shape#0"
    assert _safe_repr(list(range(20))).endswith("... (20 total)]")


def test_debug_log_call_records_entry_exit_and_errors(caplog):
    logger = logging.getLogger("fetshape.tests")

    @debug_log_call(logger)
    def divide(a, b):
        return a / b

    with caplog.at_level(logging.DEBUG, logger="fetshape.tests"):
        assert divide(6, b=3) == 2.0
        with pytest.raises(ZeroDivisionError):
            divide(1, 0)

    messages = [record.getMessage() for record in caplog.records]
    assert any("divide(6, b=3)" in message for message in messages)
    assert any(message.endswith("= 2.0") for message in messages)
    assert any("raised" in message for message in messages)


def test_reconstruction_methods_are_traced(caplog):
    with caplog.at_level(logging.DEBUG, logger="fetshape.reconstruction"):
        reconstruction = Reconstruction()
        Shape(reconstruction)
    assert any("Reconstruction.insert_shape" in record.getMessage() for record in caplog.records)
