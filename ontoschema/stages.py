"""Registered stages and per-run stage selection."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from .builder import (
    ClassExtractStage,
    ImportStage,
    IndividualsExtractStage,
    OntologyLoadStage,
    PropertyExtractStage,
    PropertyExtraStage,
    PropertyOverrideStage,
    ReasonerStage,
    UriTemplateStage,
)
from .concepts import ConceptClassExtractStage, ConceptSchemeExtractStage, ConceptSchemeLoadStage
from .config import Settings
from .pipeline import Stage

logger = logging.getLogger(__name__)

STAGE_CLASSES: tuple[type[Stage], ...] = (
    OntologyLoadStage,
    ImportStage,
    ReasonerStage,
    ClassExtractStage,
    UriTemplateStage,
    PropertyExtractStage,
    IndividualsExtractStage,
    PropertyExtraStage,
    PropertyOverrideStage,
    ConceptSchemeLoadStage,
    ConceptSchemeExtractStage,
    ConceptClassExtractStage,
)

STAGE_IDS = tuple(cls.descriptor.id for cls in STAGE_CLASSES)


def build_stages(
    settings: Settings,
    selection: Sequence[str] | None = None,
    client: httpx.Client | None = None,
) -> list[Stage]:
    """Instantiate the selected, enabled stages.

    An empty selection means every registered stage. Unknown ids, in the
    selection or in the `stages` settings, are logged and ignored.
    """
    selection = list(selection or [])
    for stage_id in selection:
        if stage_id not in STAGE_IDS:
            logger.warning("Unknown stage id '%s' in selection; ignoring", stage_id)
    for stage_id in settings.stages:
        if stage_id not in STAGE_IDS:
            logger.warning("Unknown stage id '%s' in settings; ignoring", stage_id)

    stages: list[Stage] = []
    for cls in STAGE_CLASSES:
        stage_id = cls.descriptor.id
        if selection and stage_id not in selection:
            continue
        if not settings.stage_enabled(stage_id):
            logger.info("Stage %s disabled", stage_id)
            continue
        if cls is ImportStage:
            stages.append(ImportStage(settings, client=client))
        else:
            stages.append(cls(settings))
    return stages
