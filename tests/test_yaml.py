"""Tests for retro.yaml document loading and schema checks."""

import pytest

import retro.yaml
from retro.yaml import SchemaValidationError, iter_errors, load, load_schema, loads, validate

SCHEMA = {
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string"},
        "items": {"type": "array", "items": {"type": "integer"}},
    },
}


class TestLoad:

    def test_loads_yaml(self):
        assert loads("a: 1\nb: [x, y]\n") == {"a": 1, "b": ["x", "y"]}

    def test_loads_json(self):
        assert loads('{"a": 1}', fmt='json') == {"a": 1}

    def test_load_by_suffix(self, tmp_path):
        (tmp_path / "doc.yaml").write_text("id: castle\n")
        (tmp_path / "doc.json").write_text('{"id": "keep"}')

        assert load(tmp_path / "doc.yaml") == {"id": "castle"}
        assert load(tmp_path / "doc.json") == {"id": "keep"}

    def test_load_schema(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text('{"type": "object"}')
        assert load_schema(path) == {"type": "object"}


class TestValidate:

    @pytest.fixture(autouse=True)
    def strict(self, monkeypatch):
        monkeypatch.setattr(retro.yaml, "SKIP_VALIDATION", False)

    def test_iter_errors_paths(self):
        errors = iter_errors({"items": [1, "two"]}, SCHEMA)

        assert errors[0].startswith("<root>: 'id' is a required property")
        assert errors[1].startswith("items/1:")

    def test_valid_document(self):
        validate({"id": "ok", "items": [1, 2]}, SCHEMA)

    def test_invalid_document(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate({"id": 5}, SCHEMA, source_path="doc.yaml")

        assert "doc.yaml" in str(exc_info.value)
        assert len(exc_info.value.errors) == 1

    def test_skip_validation(self, monkeypatch):
        monkeypatch.setattr(retro.yaml, "SKIP_VALIDATION", True)
        validate({"id": 5}, SCHEMA)
