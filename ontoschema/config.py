"""Settings loaded from a YAML file into nested dataclasses.

Usage:
    from ontoschema.config import load_settings
    settings = load_settings(Path("settings.yaml"))
    print(settings.ontology.ontology_file)

A missing file yields the defaults. Relative paths resolve against the
directory of the settings file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .errors import ConfigurationError
from .types import Cardinality

logger = logging.getLogger(__name__)

RDF_ID = "http://www.w3.org/1999/02/22-rdf-syntax-ns#id"

REASONER_TYPES = ("rdfs", "owl", "transitive")


# ---------------------------------------------------------------------------
# Property settings
# ---------------------------------------------------------------------------

@dataclass
class ExtraProperty:
    """A property every class must carry (added where missing)."""
    uri: str = ""
    name: str = ""
    label: str | None = None
    comment: str | None = None
    range: str | None = None
    identifier: bool = False
    cardinality: Cardinality | None = None


@dataclass
class PropertyOverride:
    """Replacement datatype and/or cardinality for a property URI."""
    uri: str = ""
    datatype: str | None = None
    cardinality: Cardinality | None = None


# ---------------------------------------------------------------------------
# Section settings
# ---------------------------------------------------------------------------

@dataclass
class OntologySettings:
    """Input files and model-level options."""
    ontology_file: Path | None = None
    concepts_file: Path | None = None
    enum_classes: list[str] = field(default_factory=list)
    identifier_property: str | None = None
    extra_properties: list[ExtraProperty] = field(default_factory=list)
    override_properties: list[PropertyOverride] = field(default_factory=list)

    @property
    def identifier_uri(self) -> str:
        """URI of the property that provides table primary keys."""
        for extra in self.extra_properties:
            if extra.identifier:
                return extra.uri
        return self.identifier_property or RDF_ID


@dataclass
class ReasonerSettings:
    """Inference settings."""
    enabled: bool = True
    reasoner_type: str = "rdfs"
    materialize: bool = True
    cache_enabled: bool = False
    cache_dir: Path = Path(".ontoschema-cache/reasoner")
    cache_ttl_seconds: float = 3600.0
    cache_format: str = "turtle"
    output_file: Path | None = None


@dataclass
class MirrorSettings:
    """Alternative locations for an imported ontology."""
    uri: str = ""
    mirrors: list[str] = field(default_factory=list)


@dataclass
class ImportSettings:
    """owl:imports resolution settings."""
    enabled: bool = True
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    follow_redirects: bool = True
    user_agent: str = "ontoschema/0.1"
    cache_enabled: bool = True
    cache_dir: Path = Path(".ontoschema-cache/imports")
    cache_ttl_seconds: float = 3600.0
    cache_format: str = "turtle"
    mirrors: list[MirrorSettings] = field(default_factory=list)


@dataclass
class SimplifierSettings:
    """Class model simplification thresholds."""
    interface_min_implementers: int = 2


@dataclass
class SchemaSettings:
    """Relational schema synthesis options."""
    merge_join_tables: bool = True
    merge_attribute_name: str = "relation_type"
    merge_min_relations: int = 2


@dataclass
class StageSettings:
    enabled: bool = True


@dataclass
class GeneratorSettings:
    """Stage selection and output target of one generator."""
    stages: list[str] = field(default_factory=list)
    output_file: Path | None = None


@dataclass
class DiagramStyle:
    """A Mermaid classDef applied to the listed class URIs."""
    name: str = ""
    uris: list[str] = field(default_factory=list)
    properties: str = ""


@dataclass
class DiagramSettings:
    styles: list[DiagramStyle] = field(default_factory=list)


@dataclass
class LoggingSettings:
    """Logging settings."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Settings:
    """All settings of a run."""
    ontology: OntologySettings = field(default_factory=OntologySettings)
    reasoner: ReasonerSettings = field(default_factory=ReasonerSettings)
    imports: ImportSettings = field(default_factory=ImportSettings)
    simplifier: SimplifierSettings = field(default_factory=SimplifierSettings)
    schema: SchemaSettings = field(default_factory=SchemaSettings)
    stages: dict[str, StageSettings] = field(default_factory=dict)
    generators: dict[str, GeneratorSettings] = field(default_factory=dict)
    diagram: DiagramSettings = field(default_factory=DiagramSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def stage_enabled(self, stage_id: str) -> bool:
        stage = self.stages.get(stage_id)
        return stage is None or stage.enabled

    def generator(self, name: str) -> GeneratorSettings:
        return self.generators.get(name) or GeneratorSettings()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _load_yaml_settings(settings_path: Path) -> dict:
    """Read the YAML file; a missing file means defaults."""
    if not settings_path.exists():
        logger.info("Settings file %s not found, using defaults", settings_path)
        return {}
    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"cannot read settings file {settings_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"settings file {settings_path} must contain a mapping")
    return data


def _section(name: str, data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{name}' must be a mapping")
    return data


def _build(cls: type, name: str, data: Any, **converted: Any):
    """Instantiate a settings dataclass, rejecting unknown keys."""
    values = dict(_section(name, data))
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"unknown key(s) in '{name}': {', '.join(unknown)}")
    values.update(converted)
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigurationError(f"invalid '{name}' settings: {exc}") from exc


def _cardinality(name: str, data: Any) -> Cardinality | None:
    if data is None:
        return None
    return _build(Cardinality, name, data)


def _path(value: Any, base_dir: Path) -> Path | None:
    if value is None:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


def _extra_property(index: int, data: Any) -> ExtraProperty:
    name = f"ontology.extra_properties[{index}]"
    raw = _section(name, data)
    extra = _build(ExtraProperty, name, raw,
                   cardinality=_cardinality(f"{name}.cardinality", raw.get("cardinality")))
    if not extra.uri:
        raise ConfigurationError(f"{name} has no uri")
    if not extra.name:
        extra.name = extra.uri.rstrip("/#").rsplit("/", 1)[-1].rsplit("#", 1)[-1]
    return extra


def _override_property(index: int, data: Any) -> PropertyOverride:
    name = f"ontology.override_properties[{index}]"
    raw = _section(name, data)
    override = _build(PropertyOverride, name, raw,
                      cardinality=_cardinality(f"{name}.cardinality", raw.get("cardinality")))
    if not override.uri:
        raise ConfigurationError(f"{name} has no uri")
    return override


def _mirror(index: int, data: Any, base_dir: Path) -> MirrorSettings:
    mirror = _build(MirrorSettings, f"imports.mirrors[{index}]", data)
    # locations without a scheme are files relative to the settings file
    mirror.mirrors = [
        location if urlsplit(location).scheme else str(_path(location, base_dir))
        for location in mirror.mirrors
    ]
    return mirror


def settings_from_dict(data: dict, base_dir: Path | None = None) -> Settings:
    """Build and validate Settings from a parsed mapping."""
    base_dir = base_dir or Path.cwd()

    raw = _section("ontology", data.get("ontology"))
    ontology = _build(
        OntologySettings, "ontology", raw,
        ontology_file=_path(raw.get("ontology_file"), base_dir),
        concepts_file=_path(raw.get("concepts_file"), base_dir),
        extra_properties=[_extra_property(i, p) for i, p in enumerate(raw.get("extra_properties") or [])],
        override_properties=[_override_property(i, p) for i, p in enumerate(raw.get("override_properties") or [])],
    )
    ontology.enum_classes = list(ontology.enum_classes or [])

    raw = _section("reasoner", data.get("reasoner"))
    reasoner = _build(
        ReasonerSettings, "reasoner", raw,
        cache_dir=_path(raw.get("cache_dir", ReasonerSettings.cache_dir), base_dir),
        output_file=_path(raw.get("output_file"), base_dir),
    )
    if reasoner.reasoner_type not in REASONER_TYPES:
        raise ConfigurationError(
            f"unknown reasoner_type '{reasoner.reasoner_type}', "
            f"expected one of {', '.join(REASONER_TYPES)}"
        )

    raw = _section("imports", data.get("imports"))
    imports = _build(
        ImportSettings, "imports", raw,
        cache_dir=_path(raw.get("cache_dir", ImportSettings.cache_dir), base_dir),
        mirrors=[_mirror(i, m, base_dir) for i, m in enumerate(raw.get("mirrors") or [])],
    )
    if imports.max_retries < 0:
        raise ConfigurationError("imports.max_retries must not be negative")

    simplifier = _build(SimplifierSettings, "simplifier", data.get("simplifier"))
    schema = _build(SchemaSettings, "schema", data.get("schema"))

    stages = {
        stage_id: _build(StageSettings, f"stages.{stage_id}", value)
        for stage_id, value in _section("stages", data.get("stages")).items()
    }

    generators = {}
    for gen_name, value in _section("generators", data.get("generators")).items():
        raw = _section(f"generators.{gen_name}", value)
        generators[gen_name] = _build(
            GeneratorSettings, f"generators.{gen_name}", raw,
            stages=list(raw.get("stages") or []),
            output_file=_path(raw.get("output_file"), base_dir),
        )

    raw = _section("diagram", data.get("diagram"))
    diagram = _build(
        DiagramSettings, "diagram", raw,
        styles=[_build(DiagramStyle, f"diagram.styles[{i}]", s)
                for i, s in enumerate(raw.get("styles") or [])],
    )

    log_settings = _build(LoggingSettings, "logging", data.get("logging"))

    unknown = sorted(set(data) - {f.name for f in fields(Settings)})
    if unknown:
        raise ConfigurationError(f"unknown settings section(s): {', '.join(unknown)}")

    return Settings(
        ontology=ontology,
        reasoner=reasoner,
        imports=imports,
        simplifier=simplifier,
        schema=schema,
        stages=stages,
        generators=generators,
        diagram=diagram,
        logging=log_settings,
    )


def load_settings(settings_path: Path | None = None) -> Settings:
    """Load settings from a YAML file (defaults when the path is None or missing)."""
    if settings_path is None:
        return Settings()
    settings_path = Path(settings_path)
    data = _load_yaml_settings(settings_path)
    return settings_from_dict(data, base_dir=settings_path.resolve().parent)
