"""
CLI entry point for packwright.

Commands:
    list        List packs available from every source
    info        Show a pack's manifest
    install     Install a pack and its dependencies
    uninstall   Remove an installed pack
    validate    Validate a pack by name or directory
    deps        Show a pack's dependency closure
    search      Filter available packs
    installed   List packs installed in the project
    source      Manage sources.json (list, add, remove)
    trust       Inspect and edit the trust state (show, add, remove)
    cache       Clear remote source caches

Architecture Note:
    The CLI is thin: it parses arguments and delegates to StarterPackManager,
    so everything here is also available programmatically.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from packwright import __version__
from packwright.config import ProjectPaths
from packwright.errors import PackwrightError
from packwright.manager import StarterPackManager
from packwright.pack.manifest import PackStructure
from packwright.pack.validator import PackValidator
from packwright.schema import (
    InstallationResult,
    InstallOptions,
    SecurityValidationResult,
    SourceConfig,
    SourceType,
)
from packwright.sources.github import parse_github_url
from packwright.sources.local import LocalPackSource
from packwright.trust.manager import TrustManager

app = typer.Typer(
    name="packwright",
    help="Install configuration packs into a project.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

ProjectOption = Annotated[
    Path,
    typer.Option(
        "--project",
        "-C",
        help="Project root. Defaults to the current directory.",
        file_okay=False,
        resolve_path=True,
    ),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Output in JSON format.")]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]packwright[/bold] version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, show_time=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """
    packwright - install, validate and remove configuration packs.
    """
    configure_logging(verbose)


# =============================================================================
# Helpers
# =============================================================================


def _output_json_error(error_type: str, message: str) -> None:
    print(json.dumps({"error": True, "error_type": error_type, "message": message}, indent=2))


def _fail(error_type: str, error: Exception, json_output: bool) -> None:
    message = error.message if isinstance(error, PackwrightError) else str(error)
    if json_output:
        _output_json_error(error_type, message)
    else:
        console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code=1)


def _pack_summary(structure: PackStructure) -> dict[str, Any]:
    manifest = structure.manifest
    return {
        "name": manifest.name,
        "version": manifest.version,
        "description": manifest.description,
        "author": manifest.author,
        "category": manifest.category,
        "tags": manifest.tags,
        "source": structure.source_id,
    }


def _print_packs(packs: list[PackStructure], title: str) -> None:
    if not packs:
        console.print("[dim]No packs found.[/dim]")
        return
    table = Table(title=f"{title} ({len(packs)})")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Source", style="dim")
    table.add_column("Description")
    for structure in packs:
        manifest = structure.manifest
        description = manifest.description
        if len(description) > 60:
            description = description[:60] + "..."
        table.add_row(manifest.name, manifest.version, structure.source_id, description)
    console.print(table)


def _print_result(result: InstallationResult, verb: str) -> None:
    for kind, names in result.installed.items():
        for name in names:
            console.print(f"  [green]✓[/green] {verb} {kind[:-1]} [cyan]{name}[/cyan]")
    for kind, names in result.skipped.items():
        for name in names:
            console.print(f"  [dim]- skipped {kind[:-1]} {name}[/dim]")
    for warning in result.warnings:
        console.print(f"  [yellow]![/yellow] {warning}")
    for error in result.errors:
        console.print(f"  [red]•[/red] {error}")
    if result.post_install_message:
        console.print()
        console.print(result.post_install_message)


def _confirm(structure: PackStructure, security: SecurityValidationResult) -> bool:
    console.print(f"[bold yellow]Pack {structure.name} needs your consent:[/bold yellow]")
    for warning in security.warnings:
        console.print(f"  [yellow]![/yellow] {warning}")
    return typer.confirm("Install anyway?", default=False)


# =============================================================================
# Pack Commands
# =============================================================================


@app.command("list")
def list_packs(project: ProjectOption = Path("."), json_output: JsonOption = False) -> None:
    """List packs available from every enabled source."""
    try:
        packs = StarterPackManager(project).list_packs()
    except PackwrightError as e:
        _fail("list_error", e, json_output)
        return

    if json_output:
        print(json.dumps({"packs": [_pack_summary(p) for p in packs], "count": len(packs)}, indent=2))
    else:
        _print_packs(packs, "Available Packs")


@app.command()
def info(
    name: Annotated[str, typer.Argument(help="Pack name.")],
    source: Annotated[Optional[str], typer.Option("--source", help="Source id to load from.")] = None,
    project: ProjectOption = Path("."),
    json_output: JsonOption = False,
) -> None:
    """Show a pack's manifest."""
    try:
        structure = StarterPackManager(project).load_pack(name, source)
    except PackwrightError as e:
        _fail("info_error", e, json_output)
        return

    manifest = structure.manifest
    if json_output:
        print(json.dumps({**manifest.to_json_dict(), "source": structure.source_id}, indent=2))
        return

    console.print(f"[bold cyan]{manifest.name}[/bold cyan] v{manifest.version}")
    console.print(f"[bold]Description:[/bold] {manifest.description}")
    console.print(f"[bold]Author:[/bold] {manifest.author}")
    if manifest.category:
        console.print(f"[bold]Category:[/bold] {manifest.category}")
    if manifest.tags:
        console.print(f"[bold]Tags:[/bold] {', '.join(manifest.tags)}")
    console.print(f"[bold]Dependencies:[/bold] {', '.join(manifest.dependencies) or 'none'}")
    console.print()
    for component_type, component in manifest.iter_components():
        required = "[red]*[/red]" if component.required else " "
        console.print(f"  {required} {component_type.value}/[cyan]{component.name}[/cyan]")
    console.print()
    console.print(f"[dim]Source: {structure.source_id} ({structure.path})[/dim]")


@app.command()
def install(
    name: Annotated[str, typer.Argument(help="Pack name.")],
    force: Annotated[bool, typer.Option("--force", help="Overwrite existing files.")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Check everything, write nothing.")] = False,
    skip_optional: Annotated[
        bool, typer.Option("--skip-optional", help="Skip non-required components.")
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Grant consent without asking.")] = False,
    no_deps: Annotated[bool, typer.Option("--no-deps", help="Do not install dependencies.")] = False,
    source: Annotated[Optional[str], typer.Option("--source", help="Source id to load from.")] = None,
    project: ProjectOption = Path("."),
    json_output: JsonOption = False,
) -> None:
    """Install a pack and, unless --no-deps, its dependencies."""
    options = InstallOptions(
        force=force,
        dry_run=dry_run,
        skip_optional=skip_optional,
        interactive=sys.stdin.isatty() and not json_output,
        assume_yes=yes,
    )
    manager = StarterPackManager(project, consent_callback=_confirm)
    if no_deps:
        result = manager.install_pack_direct(name, options, source)
    else:
        result = manager.install_pack(name, options, source)

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        prefix = "[dim](dry run)[/dim] " if dry_run else ""
        if result.success:
            console.print(f"{prefix}[green]Installed[/green] {', '.join(result.installed_packs) or name}")
        else:
            console.print(f"{prefix}[red]Installation of {name} failed[/red]")
        _print_result(result, "would install" if dry_run else "installed")
    raise typer.Exit(code=0 if result.success else 1)


@app.command()
def uninstall(
    name: Annotated[str, typer.Argument(help="Installed pack name.")],
    project: ProjectOption = Path("."),
    json_output: JsonOption = False,
) -> None:
    """Remove an installed pack."""
    result = StarterPackManager(project).uninstall_pack(name)
    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        status = "[green]Uninstalled[/green]" if result.success else "[red]Uninstall incomplete for[/red]"
        console.print(f"{status} {name}")
        _print_result(result, "removed")
        for path in result.residual_files:
            console.print(f"  [yellow]left in place:[/yellow] {path}")
    raise typer.Exit(code=0 if result.success else 1)


@app.command()
def validate(
    target: Annotated[str, typer.Argument(help="Pack name, or path to a pack directory.")],
    project: ProjectOption = Path("."),
    json_output: JsonOption = False,
) -> None:
    """Validate a pack's manifest and component files."""
    pack_dir = Path(target)
    if pack_dir.is_dir():
        pack_dir = pack_dir.resolve()
        local = LocalPackSource(pack_dir.parent, source_id="path")
        try:
            structure = local.load_pack(pack_dir.name)
        except PackwrightError as e:
            _fail("validate_error", e, json_output)
            return
        result = PackValidator().validate_pack(structure, local)
    else:
        result = StarterPackManager(project).validate_pack(target)

    if json_output:
        print(json.dumps({"valid": result.valid, "errors": result.errors, "warnings": result.warnings}, indent=2))
    else:
        if result.valid:
            console.print(f"[green]✓[/green] Pack [cyan]{target}[/cyan] is valid")
        else:
            console.print(f"[red]Pack validation failed: {len(result.errors)} error(s)[/red]")
        for error in result.errors:
            console.print(f"  [red]•[/red] {error}")
        for warning in result.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
    raise typer.Exit(code=0 if result.valid else 1)


@app.command()
def deps(
    name: Annotated[str, typer.Argument(help="Pack name.")],
    project: ProjectOption = Path("."),
    json_output: JsonOption = False,
) -> None:
    """Show a pack's dependency closure in install order."""
    resolution = StarterPackManager(project).resolve_dependencies(name)
    if json_output:
        print(
            json.dumps(
                {
                    "resolved": resolution.resolved,
                    "missing": resolution.missing,
                    "circular": resolution.circular,
                },
                indent=2,
            )
        )
    else:
        console.print(f"[bold]Install order for {name}:[/bold] {' -> '.join([*resolution.resolved, name])}")
        if resolution.missing:
            console.print(f"[red]Missing:[/red] {', '.join(resolution.missing)}")
        if resolution.circular:
            console.print(f"[red]Circular:[/red] {', '.join(resolution.circular)}")
    raise typer.Exit(code=0 if resolution.ok else 1)


@app.command()
def search(
    query: Annotated[Optional[str], typer.Argument(help="Text to match in name or description.")] = None,
    category: Annotated[Optional[str], typer.Option("--category", help="Exact category.")] = None,
    tag: Annotated[Optional[list[str]], typer.Option("--tag", help="Required tag (repeatable).")] = None,
    author: Annotated[Optional[str], typer.Option("--author", help="Exact author.")] = None,
    project: ProjectOption = Path("."),
    json_output: JsonOption = False,
) -> None:
    """Search available packs."""
    packs = StarterPackManager(project).search_packs(
        query=query, category=category, tags=tag, author=author
    )
    if json_output:
        print(json.dumps({"packs": [_pack_summary(p) for p in packs], "count": len(packs)}, indent=2))
    else:
        _print_packs(packs, "Matching Packs")


@app.command()
def installed(project: ProjectOption = Path("."), json_output: JsonOption = False) -> None:
    """List packs installed in the project."""
    try:
        records = StarterPackManager(project).list_installed()
    except PackwrightError as e:
        _fail("installed_error", e, json_output)
        return

    if json_output:
        print(json.dumps({name: r.to_json_dict() for name, r in records.items()}, indent=2))
        return
    if not records:
        console.print("[dim]No packs installed.[/dim]")
        return
    table = Table(title=f"Installed Packs ({len(records)})")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Source", style="dim")
    table.add_column("Installed")
    for name, record in sorted(records.items()):
        table.add_row(name, record.version, record.source.name, record.installed_at)
    console.print(table)


# =============================================================================
# Source Subcommand Group
# =============================================================================

source_app = typer.Typer(name="source", help="Manage pack sources.", no_args_is_help=True)
app.add_typer(source_app, name="source")


@source_app.command("list")
def source_list(project: ProjectOption = Path("."), json_output: JsonOption = False) -> None:
    """List configured sources, highest priority first."""
    sources = StarterPackManager(project).source_store.list_sources()
    if json_output:
        print(json.dumps([s.to_json_dict() for s in sources], indent=2))
        return
    table = Table(title="Sources")
    table.add_column("Id", style="cyan")
    table.add_column("Type")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled")
    table.add_column("Location", style="dim")
    for config in sources:
        location = config.config.get("url") or config.config.get("path") or ""
        if config.type is SourceType.GITHUB and not location:
            location = f"{config.config.get('owner')}/{config.config.get('repo')}"
        table.add_row(config.id, config.type.value, str(config.priority), str(config.enabled), location)
    console.print(table)


@source_app.command("add")
def source_add(
    source_id: Annotated[str, typer.Argument(help="New source id.")],
    location: Annotated[str, typer.Argument(help="Directory, HTTP URL or GitHub URL.")],
    priority: Annotated[int, typer.Option("--priority", help="Search priority (higher first).")] = 0,
    branch: Annotated[str, typer.Option("--branch", help="GitHub branch or ref.")] = "main",
    directory: Annotated[str, typer.Option("--directory", help="Pack directory inside the repository.")] = "",
    project: ProjectOption = Path("."),
) -> None:
    """Register a local directory, HTTP repository or GitHub repository."""
    parsed = parse_github_url(location)
    if parsed is not None:
        owner, repo = parsed
        config = SourceConfig(
            id=source_id,
            type=SourceType.GITHUB,
            priority=priority,
            config={"owner": owner, "repo": repo, "branch": branch, "directory": directory},
        )
    elif location.startswith(("http://", "https://")):
        config = SourceConfig(id=source_id, type=SourceType.REMOTE, priority=priority, config={"url": location})
    else:
        config = SourceConfig(
            id=source_id,
            type=SourceType.LOCAL,
            priority=priority,
            config={"path": str(Path(location).resolve())},
        )

    try:
        StarterPackManager(project).source_store.add_source(config)
    except PackwrightError as e:
        _fail("source_error", e, False)
    console.print(f"[green]✓[/green] Added {config.type.value} source [cyan]{source_id}[/cyan]")


@source_app.command("remove")
def source_remove(
    source_id: Annotated[str, typer.Argument(help="Source id.")],
    project: ProjectOption = Path("."),
) -> None:
    """Remove a source. The local source cannot be removed."""
    try:
        StarterPackManager(project).source_store.remove_source(source_id)
    except PackwrightError as e:
        _fail("source_error", e, False)
    console.print(f"[green]✓[/green] Removed source [cyan]{source_id}[/cyan]")


# =============================================================================
# Trust Subcommand Group
# =============================================================================

trust_app = typer.Typer(name="trust", help="Inspect and edit trust settings.", no_args_is_help=True)
app.add_typer(trust_app, name="trust")


@trust_app.command("show")
def trust_show(project: ProjectOption = Path("."), json_output: JsonOption = False) -> None:
    """Show the trust policy, trusted sources and recent audit records."""
    trust = TrustManager(ProjectPaths.for_root(project))
    try:
        policy = trust.get_policy()
    except PackwrightError as e:
        _fail("trust_error", e, json_output)
        return

    sources = trust.get_trusted_sources()
    history = trust.get_installation_history()
    if json_output:
        print(
            json.dumps(
                {
                    "policy": policy.to_json_dict(),
                    "trustedSources": {k: v.to_json_dict() for k, v in sources.items()},
                    "records": [r.to_json_dict() for r in history],
                },
                indent=2,
            )
        )
        return

    console.print("[bold]Trust policy[/bold]")
    for key, value in policy.to_json_dict().items():
        console.print(f"  {key}: {value}")
    console.print()
    console.print(f"[bold]Trusted sources:[/bold] {', '.join(sources) or 'none'}")
    console.print(f"[bold]Audit records:[/bold] {len(history)}")
    for record in history[-10:]:
        console.print(
            f"  [dim]{record.timestamp}[/dim] {record.action.value} "
            f"[cyan]{record.pack_name}[/cyan] {record.pack_version} from {record.source_id}"
        )


@trust_app.command("add")
def trust_add(
    source_id: Annotated[str, typer.Argument(help="Source id to trust.")],
    source_type: Annotated[SourceType, typer.Option("--type", help="Source type.")] = SourceType.GITHUB,
    description: Annotated[Optional[str], typer.Option("--description")] = None,
    project: ProjectOption = Path("."),
) -> None:
    """Trust a source so its packs skip domain checks."""
    TrustManager(ProjectPaths.for_root(project)).add_trusted_source(
        source_id, source_type, description=description
    )
    console.print(f"[green]✓[/green] Trusted source [cyan]{source_id}[/cyan]")


@trust_app.command("remove")
def trust_remove(
    source_id: Annotated[str, typer.Argument(help="Source id.")],
    project: ProjectOption = Path("."),
) -> None:
    """Stop trusting a source."""
    if TrustManager(ProjectPaths.for_root(project)).remove_trusted_source(source_id):
        console.print(f"[green]✓[/green] Source [cyan]{source_id}[/cyan] is no longer trusted")
    else:
        console.print(f"[yellow]Source {source_id} was not trusted[/yellow]")
        raise typer.Exit(code=1)


# =============================================================================
# Cache Subcommand Group
# =============================================================================

cache_app = typer.Typer(name="cache", help="Manage remote source caches.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")


@cache_app.command("clear")
def cache_clear(
    expired: Annotated[bool, typer.Option("--expired", help="Only drop expired entries.")] = False,
    project: ProjectOption = Path("."),
) -> None:
    """Clear cached remote packs."""
    StarterPackManager(project).clear_cache(expired_only=expired)
    console.print("[green]✓[/green] Cache cleared")


if __name__ == "__main__":
    app()
