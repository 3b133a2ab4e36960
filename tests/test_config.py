"""Tests for YAML settings loading."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from pathlib import Path

import pytest

from ontoschema.config import RDF_ID, Settings, load_settings, settings_from_dict
from ontoschema.errors import ConfigurationError
from ontoschema.types import Cardinality


SETTINGS_YAML = """
ontology:
  ontology_file: library.ttl
  concepts_file: /data/concepts.ttl
  enum_classes:
    - http://example.org/library#Format
  extra_properties:
    - uri: http://example.org/library#id
      identifier: true
      range: http://www.w3.org/2001/XMLSchema#integer
  override_properties:
    - uri: http://example.org/library#pages
      cardinality: {min: 1, max: 1}
reasoner:
  reasoner_type: owl
  materialize: false
imports:
  max_retries: 4
  mirrors:
    - uri: http://example.org/core
      mirrors: ["file:core.ttl", "mirrors/core.ttl"]
schema:
  merge_join_tables: false
stages:
  ontology-imports: {enabled: false}
generators:
  sql:
    output_file: out/library.sql
diagram:
  styles:
    - name: core
      uris: ["http://example.org/library#Book"]
      properties: "fill:#f9f"
logging:
  level: DEBUG
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.reasoner.reasoner_type == "rdfs"
        assert settings.imports.enabled
        assert settings.schema.merge_attribute_name == "relation_type"

    def test_none_gives_defaults(self):
        assert load_settings(None) == Settings()

    def test_sections(self, tmp_path):
        settings = load_settings(_write(tmp_path, SETTINGS_YAML))
        assert settings.ontology.enum_classes == ["http://example.org/library#Format"]
        assert settings.reasoner.reasoner_type == "owl"
        assert not settings.reasoner.materialize
        assert settings.imports.max_retries == 4
        assert not settings.schema.merge_join_tables
        assert not settings.stage_enabled("ontology-imports")
        assert settings.stage_enabled("ontology-load")
        assert settings.diagram.styles[0].name == "core"
        assert settings.logging.level == "DEBUG"

    def test_relative_paths_resolve_against_settings_dir(self, tmp_path):
        settings = load_settings(_write(tmp_path, SETTINGS_YAML))
        base = tmp_path.resolve()
        assert settings.ontology.ontology_file == base / "library.ttl"
        assert settings.ontology.concepts_file == Path("/data/concepts.ttl")
        assert settings.generator("sql").output_file == base / "out" / "library.sql"
        assert settings.imports.cache_dir == base / ".ontoschema-cache" / "imports"
        assert settings.imports.mirrors[0].mirrors == ["file:core.ttl", str(base / "mirrors" / "core.ttl")]

    def test_extra_and_override_properties(self, tmp_path):
        settings = load_settings(_write(tmp_path, SETTINGS_YAML))
        extra = settings.ontology.extra_properties[0]
        assert extra.name == "id"
        assert extra.identifier
        override = settings.ontology.override_properties[0]
        assert override.cardinality == Cardinality(1, 1)

    def test_unknown_generator_gives_defaults(self, tmp_path):
        settings = load_settings(_write(tmp_path, SETTINGS_YAML))
        assert settings.generator("er-diagram").stages == []
        assert settings.generator("er-diagram").output_file is None

    def test_empty_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""))
        assert settings.ontology.ontology_file is None
        assert settings.reasoner.cache_dir == tmp_path.resolve() / ".ontoschema-cache" / "reasoner"

    def test_unparsable_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read settings file"):
            load_settings(_write(tmp_path, "ontology: [unclosed"))

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_settings(_write(tmp_path, "- a\n- b\n"))


class TestIdentifierUri:
    def test_defaults_to_rdf_id(self):
        assert Settings().ontology.identifier_uri == RDF_ID

    def test_configured_property(self):
        settings = settings_from_dict({"ontology": {"identifier_property": "http://example.org/library#isbn"}})
        assert settings.ontology.identifier_uri == "http://example.org/library#isbn"

    def test_identifier_extra_property_wins(self):
        settings = settings_from_dict({"ontology": {
            "identifier_property": "http://example.org/library#isbn",
            "extra_properties": [{"uri": "http://example.org/library#id", "identifier": True}],
        }})
        assert settings.ontology.identifier_uri == "http://example.org/library#id"


class TestValidation:
    def test_unknown_section(self):
        with pytest.raises(ConfigurationError, match="unknown settings section"):
            settings_from_dict({"renderer": {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match=r"unknown key\(s\) in 'reasoner': speed"):
            settings_from_dict({"reasoner": {"speed": "fast"}})

    def test_unknown_reasoner_type(self):
        with pytest.raises(ConfigurationError, match="unknown reasoner_type 'hermit'"):
            settings_from_dict({"reasoner": {"reasoner_type": "hermit"}})

    def test_extra_property_needs_uri(self):
        with pytest.raises(ConfigurationError, match=r"extra_properties\[0\] has no uri"):
            settings_from_dict({"ontology": {"extra_properties": [{"name": "id"}]}})

    def test_override_needs_uri(self):
        with pytest.raises(ConfigurationError, match=r"override_properties\[0\] has no uri"):
            settings_from_dict({"ontology": {"override_properties": [{"datatype": "x"}]}})

    def test_negative_retries(self):
        with pytest.raises(ConfigurationError, match="must not be negative"):
            settings_from_dict({"imports": {"max_retries": -1}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="'schema' must be a mapping"):
            settings_from_dict({"schema": ["merge"]})

    def test_bad_cardinality_key(self):
        with pytest.raises(ConfigurationError, match="unknown key"):
            settings_from_dict({"ontology": {"override_properties": [
                {"uri": "http://example.org/library#pages", "cardinality": {"least": 1}},
            ]}})
