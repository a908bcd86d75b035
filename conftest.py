import pytest

from libcat.library import Library
from libcat.main import LibraryManager
from libcat.utils.ui_helpers import OUTPUT_MODE_ENV

@pytest.fixture
def lib(tmp_path, monkeypatch):
    # Fresh database and transaction log per test
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    lib = Library(db_file=str(tmp_path / "library.db"), log_file=str(tmp_path / "transactions.txt"))
    LibraryManager.reset(lib)
    yield lib
    LibraryManager.reset()

@pytest.fixture
def alice(lib):
    return lib.login("alice", "pass1")

@pytest.fixture
def bob(lib):
    return lib.login("bob", "pass2")

@pytest.fixture
def prof(lib):
    return lib.login("profX", "pass6")

@pytest.fixture
def librarian(lib):
    return lib.login("librarian1", "admin1")
