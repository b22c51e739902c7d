import pathlib
import site

import pytest
from simpledb.connection import dispose_all_engines

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def dispose_engines():
    """Dispose cached engines after each test so temporary databases are released."""
    yield
    dispose_all_engines()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
