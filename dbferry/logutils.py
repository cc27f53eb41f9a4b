# -*- coding: utf-8 -*-

from logging.config import dictConfig


def setup_logger(level=None, sql=False):
    """Configure console logging for the dbferry apps.

    :param level: level of the ``dbferry`` loggers, defaults to ``INFO``.
    :param sql: also log every statement sqlalchemy runs, the table sync
     builds its statements at runtime so this is the way to see them.
    """
    loggers = {
        'dbferry': {
            'handlers': ['console'],
            'propagate': False,
            'level': level or 'INFO',
        },
        # werkzeug request lines of the api server
        'werkzeug': {
            'handlers': ['console'],
            'propagate': False,
            'level': 'INFO',
        },
    }
    if sql:
        loggers['sqlalchemy.engine'] = {
            'handlers': ['console'],
            'propagate': False,
            'level': 'INFO',
        }

    dictConfig({
        'version': 1,
        'disable_existing_loggers': False,

        'root': {
            'handlers': ['console'],
            'level': 'WARNING',
        },

        'loggers': loggers,

        'handlers': {
            'console': {
                'level': 'DEBUG',
                'class': 'logging.StreamHandler',
                'formatter': 'console'
            },
        },

        'formatters': {
            'console': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            },
        }
    })
