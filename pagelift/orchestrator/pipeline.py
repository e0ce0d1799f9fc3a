"""Build transformators from options and run them over batches of pages."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pagelift.cache.metadata_cache import MetadataCache
from pagelift.mapping.loader import load_mapping, merge_mappings
from pagelift.mapping.models import MappingSpecification
from pagelift.orchestrator.models import (
    BatchResult,
    PageOutcome,
    PageReference,
    TransformationOptions,
)
from pagelift.orchestrator.transformator import GENERIC, PUBLISHING, PageTransformator
from pagelift.repository.base import Repository
from pagelift.telemetry.observers import Observer
from pagelift.utils.errors import (
    InvalidOptionsError,
    MalformedMappingError,
    PageliftError,
)

logger = logging.getLogger("pagelift.pipeline")


def resolve_specification(options: TransformationOptions) -> MappingSpecification:
    """Default mapping merged with the custom and page layout mappings, in that order."""

    for label, path in (
        ("mapping", options.mapping_path),
        ("page layout mapping", options.page_layout_mapping_path),
    ):
        if path is not None and not path.is_file():
            raise InvalidOptionsError(
                f"Provided {label} file {path} does not exist", step="validate"
            )

    specification = load_mapping()
    if options.mapping_path is not None:
        specification = merge_mappings(specification, load_mapping(options.mapping_path))
    if options.publishing_mode and options.page_layout_mapping_path is not None:
        specification = merge_mappings(
            specification, load_mapping(options.page_layout_mapping_path)
        )
    return specification


def build_transformator(
    repository: Repository,
    cache: MetadataCache,
    source_site: str,
    options: TransformationOptions,
    *,
    observers: Iterable[Observer] = (),
) -> PageTransformator:
    """Pick the variant matching the options and load its mapping."""

    transformator = PageTransformator(
        repository,
        resolve_specification(options),
        cache,
        source_site,
        variant=PUBLISHING if options.publishing_mode else GENERIC,
        observers=observers,
    )
    transformator.validate(options)
    return transformator


def run_batch(
    transformator: PageTransformator,
    references: Iterable[PageReference],
    options: TransformationOptions,
) -> BatchResult:
    """Transform pages one after another.

    A page-level failure is recorded and the batch moves on. Invalid options
    or mappings abort the batch since every page would fail the same way.
    """

    transformator.validate(options)
    result = BatchResult()
    for reference in references:
        try:
            address = transformator.transform(reference, options)
        except (InvalidOptionsError, MalformedMappingError):
            raise
        except PageliftError as exc:
            logger.warning("page %s failed at %s: %s", reference.name, exc.step, exc)
            result.outcomes.append(PageOutcome(reference=reference, error=exc))
            continue
        result.outcomes.append(PageOutcome(reference=reference, address=address))
    return result
