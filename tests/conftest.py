import pytest

from cable_catalog import load_cable_catalog


@pytest.fixture(scope="session")
def catalog():
    return load_cable_catalog()
