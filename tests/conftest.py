import logging
import os
from unittest.mock import patch

import pytest

from mod_translator.content_graph import Language, Owner
from mod_translator.logging_config import LOGGER_NAME
from tests.fakes import OWNER_ID, make_config


@pytest.fixture(autouse=True)
def offline_token_counting():
    """tiktoken may download encodings; tests count tokens by whitespace instead."""
    with patch('mod_translator.llm_client._load_encoding', return_value=None):
        yield


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logger so caplog keeps seeing package records."""
    yield
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        handler.close()
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def mod_root(tmp_path):
    root = tmp_path / "Mods" / "Sample"
    root.mkdir(parents=True)
    return str(root)


@pytest.fixture
def owner(mod_root):
    return Owner(package_id=OWNER_ID, name="Sample Mod", root_dir=mod_root)


@pytest.fixture
def english():
    return Language("English", "English")


@pytest.fixture
def french():
    return Language("French", "Français")


@pytest.fixture
def app_config(tmp_path):
    return make_config(str(tmp_path))


@pytest.fixture
def keyed_source(mod_root):
    """Path of a keyed file inside the owner's root."""
    return os.path.join(mod_root, "Languages", "English", "Keyed", "Main.xml")
