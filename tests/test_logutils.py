# -*- coding: utf-8 -*-

import logging

from dbferry.logutils import setup_logger


def test_setup_logger():
    engine_logger = logging.getLogger("sqlalchemy.engine")
    level = engine_logger.level
    try:
        setup_logger("DEBUG")
        assert logging.getLogger("dbferry").level == logging.DEBUG
        assert not logging.getLogger("dbferry").propagate

        setup_logger(sql=True)
        assert logging.getLogger("dbferry").level == logging.INFO
        assert engine_logger.level == logging.INFO
        assert not engine_logger.propagate
    finally:
        engine_logger.setLevel(level)
        engine_logger.propagate = True
        engine_logger.handlers = []
