"""Typer CLI entrypoint for pagelift."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, cast

import typer

from pagelift.cache.metadata_cache import MetadataCache
from pagelift.mapping.loader import export_default_mapping
from pagelift.orchestrator.models import BatchResult, PageReference, TransformationOptions
from pagelift.orchestrator.pipeline import build_transformator, run_batch
from pagelift.repository.folder import FolderRepository
from pagelift.settings import configure_logging, log_folder, mapping_file, parse_log_level
from pagelift.telemetry.observers import BufferedObserver, create_observer
from pagelift.utils.errors import InvalidOptionsError, MalformedMappingError

app = typer.Typer(help="Legacy to modern page transformation CLI", rich_markup_mode=None)
LogDestination = Literal["none", "file", "repository"]

EXIT_INTERNAL = 1
EXIT_INVALID = 2
EXIT_PAGES_FAILED = 3
PENDING_LOG_FILE = ".pagelift-pending-log.jsonl"


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep `pagelift transform` as explicit command form."""


@app.command("transform")
def transform_command(
    root: Annotated[Path, typer.Option(..., exists=True, file_okay=False, dir_okay=True)],
    site: Annotated[str, typer.Option(..., help="Source site id.")],
    page: Annotated[list[str], typer.Option(..., help="Page name; repeat for a batch.")],
    library: Annotated[str | None, typer.Option()] = None,
    folder: Annotated[
        str | None, typer.Option(help="Folder of the page; '<root>' for the site root.")
    ] = None,
    target_site: Annotated[str | None, typer.Option()] = None,
    overwrite: Annotated[bool, typer.Option("--overwrite")] = False,
    take_source_name: Annotated[bool, typer.Option("--take-source-name")] = False,
    replace_home_page: Annotated[bool, typer.Option("--replace-home-page")] = False,
    add_banner: Annotated[bool, typer.Option("--add-page-accept-banner")] = False,
    skip_permissions: Annotated[bool, typer.Option("--skip-item-level-permission-copy")] = False,
    skip_url_rewrite: Annotated[bool, typer.Option("--skip-url-rewriting")] = False,
    clear_cache: Annotated[bool, typer.Option("--clear-cache")] = False,
    copy_metadata: Annotated[bool, typer.Option("--copy-page-metadata")] = False,
    community_editor: Annotated[bool, typer.Option("--use-community-script-editor")] = False,
    plain_html_links: Annotated[bool, typer.Option("--summary-links-to-html")] = False,
    dont_publish: Annotated[bool, typer.Option("--dont-publish")] = False,
    disable_comments: Annotated[bool, typer.Option("--disable-comments")] = False,
    publishing: Annotated[bool, typer.Option("--publishing-page")] = False,
    target_name: Annotated[str | None, typer.Option("--publishing-target-page-name")] = None,
    mapping: Annotated[Path | None, typer.Option("--mapping")] = None,
    layout_mapping: Annotated[Path | None, typer.Option("--page-layout-mapping")] = None,
    mapping_property: Annotated[
        list[str] | None,
        typer.Option("--mapping-property", help="KEY=VALUE toggle; repeatable."),
    ] = None,
    strict_metadata: Annotated[bool, typer.Option("--strict-metadata")] = False,
    strict_permissions: Annotated[bool, typer.Option("--strict-permissions")] = False,
    log_type: Annotated[str, typer.Option("--log-type")] = "none",
    log_folder_option: Annotated[Path | None, typer.Option("--log-folder")] = None,
    log_skip_flush: Annotated[
        bool,
        typer.Option(
            "--log-skip-flush",
            help="Keep log entries under --root for the next run that flushes.",
        ),
    ] = False,
    log_verbose: Annotated[bool, typer.Option("--log-verbose")] = False,
    log_level: Annotated[str | None, typer.Option("--log-level")] = None,
) -> None:
    """Transform one or more legacy pages of a folder-backed site."""

    level = parse_log_level(log_level) if log_level is not None else None
    if log_level is not None and level is None:
        typer.echo("ERROR: --log-level must be one of: debug, info, warning, error.")
        raise typer.Exit(code=EXIT_INVALID)
    configure_logging(level)

    normalized_log_type = log_type.lower().strip()
    if normalized_log_type not in {"none", "file", "repository"}:
        typer.echo("ERROR: --log-type must be one of: none, file, repository.")
        raise typer.Exit(code=EXIT_INVALID)
    log_type_typed = cast(LogDestination, normalized_log_type)

    try:
        properties = _parse_properties(mapping_property or [])
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INVALID) from exc

    options = TransformationOptions(
        overwrite=overwrite,
        take_source_name=take_source_name,
        replace_home_page=replace_home_page,
        add_acceptance_banner=add_banner,
        skip_permission_copy=skip_permissions,
        skip_url_rewrite=skip_url_rewrite,
        clear_cache=clear_cache,
        copy_metadata=copy_metadata,
        use_alternate_editor_control=community_editor,
        links_to_plain_html=plain_html_links,
        target_site=target_site,
        log_destination_kind=log_type_typed,
        log_folder=log_folder_option or log_folder(),
        log_skip_flush=log_skip_flush,
        log_verbose=log_verbose,
        suppress_publish=dont_publish,
        disable_comments=disable_comments,
        publishing_mode=publishing,
        mapping_path=mapping or mapping_file(),
        page_layout_mapping_path=layout_mapping,
        publishing_target_name=target_name,
        strict_metadata=strict_metadata,
        strict_permissions=strict_permissions,
        mapping_properties=properties,
    )

    repository = FolderRepository(root)
    observer = create_observer(
        options.log_destination_kind,
        folder=options.log_folder,
        repository=repository,
        site_id=options.target_site or site,
        verbose=options.log_verbose,
        skip_flush=options.log_skip_flush,
    )

    spool = root / PENDING_LOG_FILE
    observers = [observer] if observer is not None else []
    for sink in observers:
        try:
            restored = sink.load_pending(spool)
        except (OSError, ValueError) as exc:
            typer.echo(f"ERROR: pending log entries in {spool} are unreadable: {exc}")
            raise typer.Exit(code=EXIT_INTERNAL) from exc
        if restored:
            typer.echo(f"INFO: restored {restored} pending log entries from {spool}")

    try:
        transformator = build_transformator(
            repository, MetadataCache(), site, options, observers=observers
        )
        references = [PageReference(name=name, library=library, folder=folder) for name in page]
        result = run_batch(transformator, references, options)
    except (InvalidOptionsError, MalformedMappingError) as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INVALID) from exc
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc
    finally:
        _flush(observers, spool)

    typer.echo(_render_summary(result))
    if result.failed:
        raise typer.Exit(code=EXIT_PAGES_FAILED)


@app.command("export-mapping")
def export_mapping_command(
    out: Annotated[Path, typer.Option(..., dir_okay=False, file_okay=True)],
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite the file when it already exists.")
    ] = False,
) -> None:
    """Write the built-in mapping document so it can be customized."""

    if out.exists() and not force:
        typer.echo(f"ERROR: {out} already exists; use --force to overwrite.")
        raise typer.Exit(code=EXIT_INTERNAL)
    try:
        written = export_default_mapping(out)
    except OSError as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc
    typer.echo(f"INFO: wrote default mapping to {written}")


def _flush(observers: list[BufferedObserver], spool: Path) -> None:
    for observer in observers:
        try:
            if observer.skip_flush:
                kept = observer.save_pending(spool)
                typer.echo(f"INFO: kept {kept} log entries in {spool} for a later run")
                continue
            location = observer.flush()
            spool.unlink(missing_ok=True)
        except Exception as exc:  # noqa: BLE001
            typer.echo(f"ERROR: writing the transformation report failed: {exc}")
            continue
        if location is not None:
            typer.echo(f"INFO: wrote transformation report to {location}")


def _parse_properties(values: list[str]) -> dict[str, str]:
    properties: dict[str, str] = {}
    for raw in values:
        key, separator, value = raw.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"--mapping-property expects KEY=VALUE, got '{raw}'")
        properties[key.strip()] = value.strip()
    return properties


def _render_summary(result: BatchResult) -> str:
    lines = []
    for outcome in result.outcomes:
        if outcome.succeeded:
            lines.append(f"OK: {outcome.reference.name} -> {outcome.address}")
        else:
            error = outcome.error
            step = getattr(error, "step", None) or "unknown"
            lines.append(
                f"FAILED: {outcome.reference.name} at {step}: {type(error).__name__}: {error}"
            )
    lines.append(f"INFO: {len(result.succeeded)} succeeded, {len(result.failed)} failed")
    return "\n".join(lines)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
