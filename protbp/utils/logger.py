"""Configure the logger for the whole project.

To use it, add the following lines at the top of your file:

from protbp.utils import logger

log = logger.get(__name__)

The logger can then be used in the file by calling:
- log.debug('My debug message')
- log.info('My info message')
- log.warning('My warning message')
- log.exception('My exception message')

The last one is meant for try / except statements, it logs the full traceback.

The log level defaults to INFO, run with LOGLEVEL=DEBUG to see per-component details of the belief
propagation (iterations, convergence, skipped components).
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any


def get(name: str) -> logging.Logger:
    """Create a logger for the given module name.

    It is composed of 1 handler:
        - stdout_handler: output the log to sys.stdout

    Args:
        name: module name used to called the 'get' method

    Returns:
        the logger configured with the handler
    """
    logger = logging.getLogger(name)
    logger.propagate = False

    logger.setLevel(os.environ.get("LOGLEVEL", "INFO").upper())

    # modules may be reloaded (e.g. by the test runner), do not stack handlers
    if not logger.handlers:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(CustomFormatter())
        logger.addHandler(stdout_handler)

    return logger


class CustomFormatter(logging.Formatter):
    r"""Custom formatter to have aligned logs.

    If a \n is used in the log message it will log 2 lines

    Examples :
    2024-04-03 14:20:21 | INFO     | PID 1234  | optimizer:search:57              | Testing 5 ...
    2024-04-03 14:20:21 | WARNING  | PID 1234  | inference:__call__:101           | Loopy ...
    """

    message_width = 110
    cpath_width = 32
    date_format = "%Y-%m-%d %H:%M:%S"

    def format(self, record: Any) -> str:  # noqa: A003 CCR001
        """Main method to format a given record.

        Args:
            record: record object to display

        Returns:
            record formatted as string
        """
        cpath = f"{record.module}:{record.funcName}:{record.lineno}"
        cpath = cpath[-self.cpath_width :].ljust(self.cpath_width)

        date = self.formatTime(record, self.date_format)
        prefix = f"{date} | {record.levelname : <8} | PID {record.process: <5} | {cpath}"

        limited_lines = []
        for line in record.getMessage().split("\n"):
            limited_lines.extend(self._wrap(line))

        final_message = "\n".join(f"{prefix} | {line}" for line in limited_lines).rstrip()

        if record.exc_info and not record.exc_text:
            # cache the traceback text to avoid converting it multiple times
            record.exc_text = self.formatException(record.exc_info)

        if record.exc_text:
            if final_message[-1:] != "\n":
                final_message += "\n"

            final_message += record.exc_text

        return final_message

    def _wrap(self, line: str) -> list[str]:
        """Split a line into chunks not longer than 'message_width', preferably at spaces.

        Args:
            line: The line to split.

        Returns:
            The chunks of the line.
        """
        chunks = []
        while len(line) > self.message_width:
            splitting_position = self.message_width

            last_space_position = line[: splitting_position - 1].rfind(" ")
            if last_space_position > 0:
                splitting_position = last_space_position

            chunks.append(line[:splitting_position])
            line = line[splitting_position:]

        chunks.append(line)
        return chunks
