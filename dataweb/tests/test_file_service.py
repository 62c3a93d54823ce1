"""Tests for the artifact store — sandboxed writes, schema extraction, ownership."""

import io
import json

import pytest
from sqlalchemy.exc import OperationalError

from dataweb.app.config import settings
from dataweb.app.errors import (
    InternalError,
    NotFoundError,
    PayloadTooLargeError,
    SecurityError,
    ValidationError,
)
from dataweb.app.models.dataset import Dataset
from dataweb.app.services import file_service
from dataweb.app.services.file_service import (
    create_dataset,
    decode_schema,
    extract_schema,
    get_owned_dataset,
    list_datasets,
    sanitize_filename,
    save_upload,
    validate_extension,
)


def _write(tmp_path, content: bytes, name: str = "data.csv"):
    path = tmp_path / name
    path.write_bytes(content)
    return path


# ---------------------------------------------------------------------------
# Filenames and sandboxing
# ---------------------------------------------------------------------------

class TestFilenames:
    def test_sanitize_strips_path_characters(self):
        assert sanitize_filename("../../evil.csv") == ".._.._evil.csv"

    def test_sanitize_keeps_allowed_characters(self):
        assert sanitize_filename("Sales-2024_v1.csv") == "Sales-2024_v1.csv"

    def test_sanitize_replaces_spaces_and_unicode(self):
        assert sanitize_filename("my data é.csv") == "my_data__.csv"

    @pytest.mark.parametrize("name", ["data.CSV", "data.csv", "x.Csv"])
    def test_csv_extension_accepted(self, name):
        validate_extension(name)

    @pytest.mark.parametrize("name", ["data.txt", "data.csv.exe", "csv", "data.xlsx"])
    def test_other_extensions_rejected(self, name):
        with pytest.raises(ValidationError, match="Only CSV"):
            validate_extension(name)


class TestSaveUpload:
    def test_file_lands_in_user_directory(self, upload_dir):
        path = save_upload(1, "people.csv", io.BytesIO(b"a,b\n1,2\n"))
        assert path.parent == (upload_dir / "user_1").resolve()
        assert path.read_bytes() == b"a,b\n1,2\n"
        assert path.name.endswith("_people.csv")

    def test_traversal_name_stays_in_sandbox(self, upload_dir):
        path = save_upload(1, "../../evil.csv", io.BytesIO(b"a\n"))
        sandbox = (upload_dir / "user_1").resolve()
        assert sandbox in path.parents
        assert not (upload_dir / "evil.csv").exists()
        assert not (upload_dir.parent / "evil.csv").exists()

    def test_repeated_uploads_do_not_overwrite(self):
        first = save_upload(1, "same.csv", io.BytesIO(b"a\n1\n"))
        second = save_upload(1, "same.csv", io.BytesIO(b"a\n2\n"))
        assert first != second
        assert first.read_bytes() == b"a\n1\n"

    def test_users_get_separate_directories(self):
        a = save_upload(1, "x.csv", io.BytesIO(b"a\n"))
        b = save_upload(2, "x.csv", io.BytesIO(b"a\n"))
        assert a.parent != b.parent

    def test_escaping_path_is_deleted_and_rejected(self, upload_dir, monkeypatch):
        monkeypatch.setattr(file_service, "generate_stored_name", lambda name: "../escaped.csv")
        with pytest.raises(SecurityError):
            save_upload(1, "x.csv", io.BytesIO(b"a\n"))
        assert not (upload_dir / "escaped.csv").exists()

    def test_oversized_stream_rejected_and_removed(self, upload_dir, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 10)
        with pytest.raises(PayloadTooLargeError):
            save_upload(1, "big.csv", io.BytesIO(b"a,b,c\n" * 10))
        assert list((upload_dir / "user_1").iterdir()) == []


# ---------------------------------------------------------------------------
# Schema extraction
# ---------------------------------------------------------------------------

class TestExtractSchema:
    def test_simple_header(self, tmp_path):
        path = _write(tmp_path, b"name,age,city\nAlice,30,Paris\n")
        assert extract_schema(path) == {"columns": ["name", "age", "city"]}

    def test_strips_whitespace_and_quotes(self, tmp_path):
        path = _write(tmp_path, b'"name" , "age",city \r\n1,2,3\r\n')
        assert extract_schema(path) == {"columns": ["name", "age", "city"]}

    def test_byte_order_mark_ignored(self, tmp_path):
        path = _write(tmp_path, "\ufeffid,value\n1,2\n".encode("utf-8"))
        assert extract_schema(path) == {"columns": ["id", "value"]}

    def test_only_first_line_is_read(self, tmp_path):
        path = _write(tmp_path, b"a,b\n" + "caf\xe9".encode("latin-1") + b",x\n")
        assert extract_schema(path) == {"columns": ["a", "b"]}

    def test_empty_first_line_rejected(self, tmp_path):
        path = _write(tmp_path, b"\nname,age\n")
        with pytest.raises(ValidationError, match="no valid column headers"):
            extract_schema(path)

    def test_empty_file_rejected(self, tmp_path):
        path = _write(tmp_path, b"")
        with pytest.raises(ValidationError):
            extract_schema(path)

    def test_undecodable_header_rejected(self, tmp_path):
        path = _write(tmp_path, b"\xff\xfe\xfa,b\n")
        with pytest.raises(ValidationError):
            extract_schema(path)


class TestDecodeSchema:
    def test_valid_document(self):
        assert decode_schema('{"columns": ["a"]}') == {"columns": ["a"]}

    @pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]", '{"cols": []}', '{"columns": "a"}'])
    def test_unusable_documents(self, raw):
        assert decode_schema(raw) is None


# ---------------------------------------------------------------------------
# Dataset records
# ---------------------------------------------------------------------------

class TestCreateDataset:
    def test_records_owner_path_and_schema(self, db, make_user, upload_dir):
        user, _ = make_user("alice")
        dataset = create_dataset(db, user.id, "people.csv", io.BytesIO(b"name,age,city\nA,1,P\n"))

        assert dataset.id is not None
        assert dataset.user_id == user.id
        assert dataset.original_name == "people.csv"
        assert json.loads(dataset.schema_json) == {"columns": ["name", "age", "city"]}
        assert str((upload_dir / f"user_{user.id}").resolve()) in dataset.file_path

    def test_headerless_file_is_not_kept(self, db, make_user, upload_dir):
        user, _ = make_user("alice")
        with pytest.raises(ValidationError):
            create_dataset(db, user.id, "empty.csv", io.BytesIO(b"\n1,2\n"))

        assert list((upload_dir / f"user_{user.id}").iterdir()) == []
        assert db.query(Dataset).count() == 0

    def test_wrong_extension_writes_nothing(self, db, make_user, upload_dir):
        user, _ = make_user("alice")
        with pytest.raises(ValidationError):
            create_dataset(db, user.id, "notes.txt", io.BytesIO(b"a,b\n"))
        assert not (upload_dir / f"user_{user.id}").exists()

    def test_declared_oversize_writes_nothing(self, db, make_user, upload_dir):
        user, _ = make_user("alice")
        with pytest.raises(PayloadTooLargeError):
            create_dataset(
                db, user.id, "big.csv", io.BytesIO(b"a,b\n"), declared_size=settings.MAX_UPLOAD_SIZE + 1
            )
        assert not (upload_dir / f"user_{user.id}").exists()

    def test_failed_commit_removes_file(self, db, make_user, upload_dir, monkeypatch):
        user, _ = make_user("alice")

        def fail_commit():
            raise OperationalError("INSERT INTO datasets", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db, "commit", fail_commit)
        with pytest.raises(InternalError, match="Failed to process upload"):
            create_dataset(db, user.id, "people.csv", io.BytesIO(b"name,age\nA,1\n"))

        assert list((upload_dir / f"user_{user.id}").iterdir()) == []
        assert db.query(Dataset).count() == 0


class TestOwnership:
    def test_owner_can_fetch(self, db, make_user):
        user, _ = make_user("alice")
        dataset = create_dataset(db, user.id, "a.csv", io.BytesIO(b"x\n"))
        assert get_owned_dataset(db, dataset.id, user.id).id == dataset.id

    def test_other_user_gets_not_found(self, db, make_user):
        alice, _ = make_user("alice")
        bob, _ = make_user("bob")
        dataset = create_dataset(db, alice.id, "a.csv", io.BytesIO(b"x\n"))

        with pytest.raises(NotFoundError) as foreign:
            get_owned_dataset(db, dataset.id, bob.id)
        with pytest.raises(NotFoundError) as missing:
            get_owned_dataset(db, 9999, bob.id)
        assert foreign.value.message == missing.value.message

    def test_listing_is_scoped_and_newest_first(self, db, make_user):
        alice, _ = make_user("alice")
        bob, _ = make_user("bob")
        first = create_dataset(db, alice.id, "first.csv", io.BytesIO(b"x\n"))
        second = create_dataset(db, alice.id, "second.csv", io.BytesIO(b"x\n"))
        create_dataset(db, bob.id, "bobs.csv", io.BytesIO(b"x\n"))

        assert [d.id for d in list_datasets(db, alice.id)] == [second.id, first.id]
