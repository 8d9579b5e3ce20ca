"""Shared fixtures: a small course library and an engine running on it."""
import logging
import typing as t

import pytest

from local_host import LocalLibrary
from syllabus_data.config import SyllabusConfig
from syllabus_data.logging_config import LOGGER_NAMES
from syllabus_data.manager import SyllabusManager


COURSE_ID = 3
OTHER_COLLECTION_ID = 7


@pytest.fixture(autouse=True)
def _restore_package_loggers() -> t.Iterator[None]:
    """Undo logger changes made by configure_logging so tests stay isolated."""
    loggers = [logging.getLogger(name) for name in LOGGER_NAMES]
    saved = [(logger, list(logger.handlers), logger.level, logger.propagate) for logger in loggers]
    yield
    for logger, handlers, level, propagate in saved:
        logger.handlers[:] = handlers
        logger.setLevel(level)
        logger.propagate = propagate


@pytest.fixture
def library() -> LocalLibrary:
    """Collection 3 with three readings, a note and one unassigned reading; collection 7 is empty."""
    library = LocalLibrary()
    library.add_collection("Intro to Sociology", key="SOC101AA", id=COURSE_ID)
    library.add_collection("Research Methods", key="METHODS1", id=OTHER_COLLECTION_ID)
    library.add_item("Durkheim: Suicide", collections=[COURSE_ID], id=10)
    library.add_item("Weber: The Protestant Ethic", collections=[COURSE_ID], id=11)
    library.add_item("Marx: Capital", collections=[COURSE_ID], id=12)
    library.add_item("Lecture notes", item_type="note", collections=[COURSE_ID], id=13)
    library.add_item("Background reading", collections=[COURSE_ID], id=14)
    return library


@pytest.fixture
def config() -> SyllabusConfig:
    return SyllabusConfig(debounce_delay=0.01, poll_interval=0.01)


@pytest.fixture
def manager(library: LocalLibrary, config: SyllabusConfig) -> t.Iterator[SyllabusManager]:
    manager = SyllabusManager(library.host, config)
    manager.initialize()
    yield manager
    manager.cache.shutdown()
