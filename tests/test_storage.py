import pytest

from storage import PdfStorage, StorageError


@pytest.fixture
def storage(tmp_path):
    return PdfStorage(tmp_path.as_posix(), "http://localhost:5000/")


def test_upload_returns_public_url_and_writes_under_user_prefix(storage, tmp_path):
    url = storage.upload(3, "12/invoice-INV-001.pdf", b"%PDF-1.4")
    assert url == "http://localhost:5000/files/3/12/invoice-INV-001.pdf"
    assert (tmp_path / "3" / "12" / "invoice-INV-001.pdf").read_bytes() == b"%PDF-1.4"
    assert storage.exists(url)
    assert storage.read(url) == b"%PDF-1.4"


def test_remove_is_idempotent(storage):
    url = storage.upload(1, "1/a.pdf", b"x")
    storage.remove(url)
    storage.remove(url)
    assert not storage.exists(url)


def test_paths_cannot_escape_root(storage):
    with pytest.raises(StorageError):
        storage.upload(1, "../../etc/passwd", b"x")
    assert not storage.exists("http://localhost:5000/files/../../secret")


def test_non_storage_url_is_rejected(storage):
    with pytest.raises(StorageError):
        storage.local_path("/tmp/invoice.pdf")
