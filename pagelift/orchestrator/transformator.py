"""Page transformation orchestrator.

One orchestrator serves both wiki/web part pages and publishing pages; the
differences live in ``TransformVariant``. Steps run in this order and stop at
the first fatal error:

validate -> resolve_target -> load_source -> check_existing -> analyze -> map
-> assemble -> persist -> copy_metadata -> copy_permissions -> publish ->
rename -> complete

Nothing is written before ``persist``. Renaming the legacy page is the last
step so an earlier failure never leaves the source renamed.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from pagelift.analysis.analyzer import analyze_page
from pagelift.analysis.models import LegacyComponent, SourcePage
from pagelift.cache.metadata_cache import MetadataCache
from pagelift.mapper.mapper import Mapper
from pagelift.mapper.models import ControlDescriptor, MappingContext, MappingResult
from pagelift.mapping.models import MappingSpecification
from pagelift.mapping.transforms import TransformContext
from pagelift.orchestrator.assembler import assemble_document, stock_home_page
from pagelift.orchestrator.models import ModernPageDocument, PageReference, TransformationOptions
from pagelift.repository.base import MODERN_PAGES_LIBRARY, ItemRef, Repository
from pagelift.telemetry.models import LogEntry, Severity
from pagelift.telemetry.observers import Observer
from pagelift.utils.errors import (
    AlreadyExistsError,
    InvalidOptionsError,
    MetadataCopyFailure,
    PageliftError,
    PermissionCopyFailure,
    SourcePageNotFoundError,
)

logger = logging.getLogger("pagelift.transform")

BANNER_IDENTIFIER = "PageAcceptanceBanner"
MIGRATED_PREFIX = "Migrated_"
PREVIOUS_PREFIX = "Previous_"

_LOG_LEVELS: dict[str, int] = {
    "info": logging.INFO,
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class TransformVariant:
    """Capabilities that distinguish the supported page families."""

    name: str
    publishing: bool
    requires_target_site: bool


GENERIC = TransformVariant(name="generic", publishing=False, requires_target_site=False)
PUBLISHING = TransformVariant(name="publishing", publishing=True, requires_target_site=True)


@dataclass
class _RunState:
    page_id: str
    step: str = "validate"


class PageTransformator:
    """Transforms legacy pages of one source site into modern documents."""

    def __init__(
        self,
        repository: Repository,
        specification: MappingSpecification,
        cache: MetadataCache,
        source_site: str,
        *,
        variant: TransformVariant = GENERIC,
        observers: Iterable[Observer] = (),
    ) -> None:
        self._repository = repository
        self._specification = specification
        self._cache = cache
        self._source_site = source_site
        self._variant = variant
        self._observers: list[Observer] = list(observers)

    @property
    def variant(self) -> TransformVariant:
        return self._variant

    @property
    def specification(self) -> MappingSpecification:
        return self._specification

    def register_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def flush_observers(self) -> None:
        """Flush every registered observer; a failing observer does not stop the others."""

        for observer in self._observers:
            try:
                observer.flush()
            except Exception:  # noqa: BLE001
                logger.exception("observer %s failed to flush", type(observer).__name__)

    def validate(self, options: TransformationOptions) -> None:
        """Reject contradictory or incomplete options before any remote call."""

        if options.publishing_mode != self._variant.publishing:
            raise InvalidOptionsError(
                f"publishing_mode={options.publishing_mode} does not match the "
                f"'{self._variant.name}' transformator",
                step="validate",
            )
        if self._variant.requires_target_site and (
            not options.target_site or options.target_site == self._source_site
        ):
            raise InvalidOptionsError(
                "Publishing page transformation is only supported when transforming "
                "into another site. Set target_site to a modern target site.",
                step="validate",
            )
        if self._variant.publishing and options.take_source_name:
            raise InvalidOptionsError(
                "take_source_name is not supported for publishing pages", step="validate"
            )
        if options.mapping_path is not None and not options.mapping_path.is_file():
            raise InvalidOptionsError(
                f"Provided mapping file {options.mapping_path} does not exist", step="validate"
            )
        if (
            self._variant.publishing
            and options.page_layout_mapping_path is not None
            and not options.page_layout_mapping_path.is_file()
        ):
            raise InvalidOptionsError(
                f"Provided page layout mapping file {options.page_layout_mapping_path} "
                "does not exist",
                step="validate",
            )

    def transform(self, reference: PageReference, options: TransformationOptions) -> str | None:
        """Transform one page and return the address of the new document."""

        state = _RunState(page_id=f"{self._source_site}/{reference.name}")
        started = time.perf_counter()
        self._emit("info", f"Transformation of page '{reference.name}' started", state)

        try:
            self.validate(options)

            state.step = "resolve_target"
            if options.clear_cache:
                self._cache.clear_all()
                self._emit("info", "Metadata cache cleared", state)
            target_site = options.target_site or self._source_site
            cross_site = target_site != self._source_site
            source_url = self._cache.site_url(self._repository, self._source_site)
            target_url = self._cache.site_url(self._repository, target_site)
            self._cache.available_controls(self._repository, target_site)
            self._emit(
                "verbose",
                f"Target site '{target_site}' ({'cross-site' if cross_site else 'in-place'})",
                state,
            )

            state.step = "load_source"
            page = self._load_source(reference, source_url)
            target_name = self._target_name(page, options, cross_site)

            state.step = "check_existing"
            existing = self._repository.find_document(target_site, target_name)
            if existing is not None:
                if not options.overwrite:
                    raise AlreadyExistsError(
                        f"A modern page already exists at {existing} and overwrite is off",
                        address=existing,
                    )
                self._emit("info", f"Existing page {existing} will be overwritten", state)

            if options.replace_home_page and page.is_home_page:
                state.step = "assemble"
                document = stock_home_page(
                    site_id=target_site,
                    name=target_name,
                    title=page.title or page.name,
                    source_page=page.page_id,
                )
                self._emit("info", "Home page replaced by the stock modern home page", state)
            else:
                mapper = Mapper(
                    self._specification,
                    self._cache,
                    MappingContext(
                        site_id=target_site,
                        mapping_properties=MappingProxyType(
                            options.effective_mapping_properties()
                        ),
                        transform_context=TransformContext(
                            source_site_url=source_url or "",
                            target_site_url=target_url or "",
                            rewrite_urls=not options.skip_url_rewrite,
                        ),
                    ),
                )
                document = self._build_document(
                    page, mapper, options, state, target_site=target_site, target_name=target_name
                )

            state.step = "persist"
            address = self._repository.write_document(document, overwrite=options.overwrite)
            self._emit("info", f"Modern page written to {address}", state)

            source_item = ItemRef(site_id=page.site_id, library=page.library, name=page.name)
            target_item = document.item

            if options.copy_metadata:
                state.step = "copy_metadata"
                self._best_effort(
                    lambda: self._repository.copy_metadata(source_item, target_item),
                    failure=MetadataCopyFailure,
                    strict=options.strict_metadata,
                    what="Page metadata",
                    state=state,
                )

            if not options.skip_permission_copy:
                state.step = "copy_permissions"
                self._best_effort(
                    lambda: self._repository.copy_permissions(source_item, target_item),
                    failure=PermissionCopyFailure,
                    strict=options.strict_permissions,
                    what="Item level permissions",
                    state=state,
                )

            state.step = "publish"
            if not options.suppress_publish:
                self._repository.publish(target_item)
                self._emit("info", "Page published", state)
            if options.disable_comments:
                self._repository.set_comments_enabled(target_item, False)
                self._emit("info", "Page comments disabled", state)

            if options.take_source_name and not cross_site:
                state.step = "rename"
                previous = self._repository.rename(source_item, f"{PREVIOUS_PREFIX}{page.name}")
                self._emit("info", f"Source page renamed to {previous.address}", state)
                renamed = self._repository.rename(target_item, page.name)
                address = renamed.address
                self._emit("info", f"Modern page renamed to {address}", state)

            state.step = "complete"
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            self._emit("info", f"Transformation completed in {elapsed_ms} ms: {address}", state)
            return address

        except PageliftError as exc:
            if exc.page_id is None:
                exc.page_id = state.page_id
            if exc.step is None:
                exc.step = state.step
            self._emit("error", f"{type(exc).__name__}: {exc}", state)
            raise
        except Exception as exc:
            self._emit("error", f"{type(exc).__name__}: {exc}", state)
            raise

    def _load_source(self, reference: PageReference, source_url: str | None) -> SourcePage:
        if reference.in_root_folder:
            path = f"{(source_url or '').rstrip('/')}/{reference.name}"
            page = self._repository.get_file(self._source_site, path)
        else:
            if self._variant.publishing:
                library_hint = self._cache.publishing_library(self._repository, self._source_site)
            else:
                library_hint = reference.library or MODERN_PAGES_LIBRARY
            page = self._repository.get_page(self._source_site, reference, library_hint)

        if page is None:
            raise SourcePageNotFoundError(f"Page '{reference.name}' does not exist")
        return page

    def _target_name(
        self, page: SourcePage, options: TransformationOptions, cross_site: bool
    ) -> str:
        if self._variant.publishing and options.publishing_target_name:
            return options.publishing_target_name
        if cross_site:
            return page.name
        return f"{MIGRATED_PREFIX}{page.name}"

    def _build_document(
        self,
        page: SourcePage,
        mapper: Mapper,
        options: TransformationOptions,
        state: _RunState,
        *,
        target_site: str,
        target_name: str,
    ) -> ModernPageDocument:
        state.step = "analyze"
        layout = None
        if self._variant.publishing and page.page_layout:
            layout = self._specification.layout_for(page.page_layout)
            if layout is None:
                self._emit(
                    "warning",
                    f"No mapping for page layout '{page.page_layout}', using a default layout",
                    state,
                )
        analysis = analyze_page(page, layout)
        self._emit(
            "verbose", f"Analyzed {analysis.shape} page: {len(analysis.units)} content units", state
        )
        for unresolved in analysis.unresolved:
            self._emit(
                "warning",
                f"Embedded component '{unresolved.component_id}' not found on the page",
                state,
            )
        for unplaced in analysis.unplaced:
            zone = f"zone '{unplaced.zone_id}'" if unplaced.zone_id else "no zone"
            self._emit(
                "warning",
                f"Web part '{unplaced.component_id}' sits in {zone} and was not transformed",
                state,
            )

        state.step = "map"
        results = mapper.map_units(analysis.units)
        for result in results:
            self._report_mapping(result, state)

        banner: list[ControlDescriptor] = []
        if options.add_acceptance_banner:
            banner = self._banner_controls(page, mapper, target_name, state)

        state.step = "assemble"
        document = assemble_document(
            site_id=target_site,
            name=target_name,
            title=page.title or page.name,
            results=results,
            banner=banner,
            source_page=page.page_id,
        )
        self._emit(
            "verbose",
            f"Assembled {len(document.sections)} sections with "
            f"{len(document.controls())} controls",
            state,
        )
        return document

    def _banner_controls(
        self, page: SourcePage, mapper: Mapper, target_name: str, state: _RunState
    ) -> list[ControlDescriptor]:
        unit = LegacyComponent(
            index=-1,
            identifier=BANNER_IDENTIFIER,
            component_id=BANNER_IDENTIFIER,
            properties=MappingProxyType(
                {"SourcePage": page.server_relative_url or page.page_id, "TargetPage": target_name}
            ),
        )
        result = mapper.map(unit)
        self._report_mapping(result, state)
        return [descriptor.model_copy(update={"row": 0}) for descriptor in result.descriptors]

    def _report_mapping(self, result: MappingResult, state: _RunState) -> None:
        for warning in result.warnings:
            self._emit("warning", f"Unit #{result.source_index} dropped: {warning.message}", state)
        for issue in result.property_issues:
            self._emit("warning", issue, state)
        if result.warnings:
            return

        if result.descriptors:
            controls = ", ".join(descriptor.control for descriptor in result.descriptors)
            how = "default text rule" if result.used_default else f"rule '{result.rule}'"
            if result.variant:
                how += f" variant '{result.variant}'"
            message = f"Unit #{result.source_index} '{result.identifier}' -> {controls} ({how})"
        else:
            message = (
                f"Unit #{result.source_index} '{result.identifier}' suppressed by "
                f"rule '{result.rule}'"
            )
        self._emit("verbose", message, state)

    def _best_effort(
        self,
        action: Callable[[], None],
        *,
        failure: type[PageliftError],
        strict: bool,
        what: str,
        state: _RunState,
    ) -> None:
        try:
            action()
        except Exception as exc:  # noqa: BLE001
            if strict:
                raise failure(
                    f"{what} could not be copied: {exc}", page_id=state.page_id, step=state.step
                ) from exc
            self._emit("warning", f"{what} could not be copied: {exc}", state)
            return
        self._emit("info", f"{what} copied", state)

    def _emit(self, severity: Severity, message: str, state: _RunState) -> None:
        entry = LogEntry(severity=severity, message=message, page_id=state.page_id, step=state.step)
        _log_event(
            _LOG_LEVELS[severity],
            "transform",
            page_id=state.page_id,
            step=state.step,
            severity=severity,
            message=message,
        )
        for observer in self._observers:
            try:
                observer.notify(entry)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "observer %s failed to handle a log entry", type(observer).__name__
                )


def _log_event(level: int, event: str, **fields: Any) -> None:
    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, sort_keys=True))
