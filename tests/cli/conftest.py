import functools
import logging

import click.testing
import pytest

from bundleinject.cli import main


@pytest.fixture(autouse=True)
def _restore_the_root_logger():
    """ The CLI commands reconfigure the logging; undo it for other tests. """
    logger = logging.getLogger()
    handlers = list(logger.handlers)
    level = logger.level
    try:
        yield
    finally:
        logger.handlers[:] = handlers
        logger.setLevel(level)


@pytest.fixture()
def invoke():
    """ Run the CLI in-process, as if from the shell. """
    return functools.partial(click.testing.CliRunner().invoke, main)


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('bundleinject._core.reactor.running.run')
