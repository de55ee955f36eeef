"""CLI entry point for the Physna folder tools.

Resolves folder paths, lists and renders folder trees, manages folders and
controls the local folder hierarchy cache.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Coroutine, Optional, TypeVar

import httpx
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .cache.hierarchy_cache import HierarchyCache
from .clients.auth import TokenManager
from .core.config import PhysnaConfig, get_config
from .core.errors import (
    AmbiguousRootError,
    CacheError,
    FolderNotEmptyError,
    FolderNotFoundError,
    RemoteError,
)
from .hierarchy.paths import ROOT_PATH, normalize_path
from .orchestration import FolderActions, Strategy
from .output import OutputFormat, json_dumps, render_folders

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_REMOTE_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_AUTH_ERROR = 3

ROOT_MARKER = "ROOT"

# CLI app
app = typer.Typer(
    name="physna-cli",
    help="Physna folder tools - resolve, list and manage tenant folders",
    add_completion=False,
)
folder_app = typer.Typer(help="Folder path resolution, listing and management")
cache_app = typer.Typer(help="Local folder hierarchy cache")
app.add_typer(folder_app, name="folder")
app.add_typer(cache_app, name="cache")

console = Console()
err_console = Console(stderr=True)


@dataclass
class CLIState:
    """Options shared by every command."""

    config: PhysnaConfig
    strategy: Strategy = Strategy.HIERARCHY
    refresh: bool = False

    @property
    def tenant(self) -> str:
        if not self.config.tenant:
            err_console.print("[red]No tenant given.[/red] Use --tenant or set PHYSNA_TENANT.")
            raise typer.Exit(EXIT_USAGE_ERROR)
        return self.config.tenant


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"physna-cli version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    tenant: Optional[str] = typer.Option(
        None,
        "--tenant",
        "-t",
        help="Tenant ID (defaults to PHYSNA_TENANT)",
    ),
    strategy: Strategy = typer.Option(
        Strategy.HIERARCHY,
        "--strategy",
        case_sensitive=False,
        help="Path resolution strategy: hierarchy or incremental",
    ),
    refresh: bool = typer.Option(
        False,
        "--refresh",
        help="Rebuild the folder hierarchy from the API before running",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Physna folder tools."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = get_config().with_overrides(tenant=tenant)
    except ValueError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_REMOTE_ERROR)
    ctx.obj = CLIState(config=config, strategy=strategy, refresh=refresh)


def _state(ctx: typer.Context) -> CLIState:
    return ctx.obj


def _require_valid_config(config: PhysnaConfig) -> None:
    """Exit with an error listing configuration problems."""
    errors = config.validate()
    if errors:
        err_console.print("[red]Configuration errors:[/red]")
        for error in errors:
            err_console.print(f"  - {error}")
        err_console.print("\nPlease set environment variables or create a .env file.")
        raise typer.Exit(EXIT_REMOTE_ERROR)


def _actions(state: CLIState) -> FolderActions:
    _require_valid_config(state.config)
    return FolderActions.from_config(state.config, strategy=state.strategy)


def _cache(state: CLIState) -> HierarchyCache:
    return HierarchyCache(
        state.config.cache_dir,  # type: ignore[arg-type]
        ttl_seconds=state.config.cache_ttl_seconds,
        page_size=state.config.page_size,
        max_pages=state.config.max_pages,
    )


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, mapping folder errors to exit codes."""
    try:
        return asyncio.run(coro)
    except (FolderNotFoundError, AmbiguousRootError, FolderNotEmptyError, ValueError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_USAGE_ERROR)
    except RemoteError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        err_console.print(f"[yellow]Hint:[/yellow] {e.hint}")
        raise typer.Exit(EXIT_AUTH_ERROR if e.is_auth_error else EXIT_REMOTE_ERROR)
    except CacheError as e:
        err_console.print(f"[red]Cache error:[/red] {e}")
        raise typer.Exit(EXIT_REMOTE_ERROR)


def _echo(text: str) -> None:
    console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


# -----------------------------------------------------------------------------
# folder commands
# -----------------------------------------------------------------------------


@folder_app.command("resolve")
def folder_resolve(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Folder paths, e.g. /Root/Sub"),
) -> None:
    """Resolve folder paths to folder IDs ("/" prints ROOT)."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    async def resolve() -> dict[str, Any]:
        if state.refresh:
            await actions.refresh(tenant)
        return await actions.resolve_paths(tenant, paths, raise_missing=len(paths) == 1)

    results = _run(resolve())

    if len(paths) == 1:
        folder_id = results[paths[0]]
        _echo(folder_id if folder_id is not None else ROOT_MARKER)
        return

    table = Table(title="Resolved Folders")
    table.add_column("Path", style="cyan")
    table.add_column("Folder ID")

    missing = 0
    for path in paths:
        result = results[path]
        if isinstance(result, FolderNotFoundError):
            missing += 1
            table.add_row(path, "[red]not found[/red]")
        else:
            table.add_row(path, result if result is not None else ROOT_MARKER)

    console.print(table)
    if missing:
        raise typer.Exit(EXIT_USAGE_ERROR)


@folder_app.command("list")
def folder_list(
    ctx: typer.Context,
    path: str = typer.Argument(ROOT_PATH, help="Folder path; / lists top-level folders"),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="List every descendant, not only direct sub-folders",
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.TREE,
        "--format",
        "-f",
        case_sensitive=False,
        help="Output format: json, csv or tree",
    ),
) -> None:
    """List the folders below a path."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    entries = _run(
        actions.list_children(
            tenant,
            normalize_path(path),
            direct_only=not recursive,
            refresh=state.refresh,
        )
    )
    _echo(render_folders(entries, output_format))


@folder_app.command("tree")
def folder_tree(
    ctx: typer.Context,
    path: Optional[str] = typer.Argument(None, help="Subtree to render"),
) -> None:
    """Print the folder tree, or the subtree at a path."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    _echo(_run(actions.render_tree(tenant, path, refresh=state.refresh)))


@folder_app.command("get")
def folder_get(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Folder path"),
) -> None:
    """Show a folder's details as JSON."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    folder = _run(actions.get_folder(tenant, path))
    _echo(json_dumps(folder.model_dump(by_alias=True)).decode("utf-8"))


@folder_app.command("create")
def folder_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the new folder"),
    parent: Optional[str] = typer.Option(
        None,
        "--parent",
        "-p",
        help="Parent folder path (top level if omitted)",
    ),
) -> None:
    """Create a folder."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    folder = _run(actions.create_folder(tenant, name, parent_path=parent))
    console.print(f"[green]Created folder[/green] {folder.name} ({folder.id})")


@folder_app.command("rename")
def folder_rename(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Folder path"),
    new_name: str = typer.Argument(..., help="New folder name"),
) -> None:
    """Rename a folder."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    folder = _run(actions.rename_folder(tenant, path, new_name))
    console.print(f"[green]Renamed folder[/green] {folder.id} to {folder.name}")


@folder_app.command("move")
def folder_move(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Folder path"),
    parent: Optional[str] = typer.Option(
        None,
        "--parent",
        "-p",
        help="New parent folder path (top level if omitted or /)",
    ),
) -> None:
    """Move a folder under a new parent."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    folder = _run(actions.move_folder(tenant, path, parent_path=parent))
    console.print(f"[green]Moved folder[/green] {folder.name} ({folder.id})")


@folder_app.command("delete")
def folder_delete(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Folder path"),
    force: bool = typer.Option(
        False,
        "--force",
        help="Delete the folder and all of its contents",
    ),
) -> None:
    """Delete a folder."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    folder_id = _run(actions.delete_folder(tenant, path, force=force))
    console.print(f"[green]Deleted folder[/green] {folder_id}")


# -----------------------------------------------------------------------------
# cache commands
# -----------------------------------------------------------------------------


@cache_app.command("refresh")
def cache_refresh(ctx: typer.Context) -> None:
    """Rebuild the tenant's folder hierarchy cache from the API."""
    state = _state(ctx)
    tenant = state.tenant
    actions = _actions(state)

    hierarchy = _run(actions.refresh(tenant))
    console.print(
        f"[green]Cached {len(hierarchy)} folders[/green] "
        f"({len(hierarchy.root_ids)} top-level) for tenant {tenant}"
    )


@cache_app.command("invalidate")
def cache_invalidate(ctx: typer.Context) -> None:
    """Delete the tenant's folder hierarchy cache."""
    state = _state(ctx)
    tenant = state.tenant

    try:
        removed = _cache(state).invalidate(tenant)
    except CacheError as e:
        err_console.print(f"[red]Cache error:[/red] {e}")
        raise typer.Exit(EXIT_REMOTE_ERROR)

    if removed:
        console.print(f"[green]Invalidated folder cache for tenant {tenant}[/green]")
    else:
        console.print(f"No folder cache for tenant {tenant}")


@cache_app.command("purge")
def cache_purge(ctx: typer.Context) -> None:
    """Delete the folder hierarchy cache of every tenant."""
    state = _state(ctx)

    try:
        removed = _cache(state).purge()
    except CacheError as e:
        err_console.print(f"[red]Cache error:[/red] {e}")
        raise typer.Exit(EXIT_REMOTE_ERROR)

    console.print(f"[green]Removed {removed} cached folder hierarchies[/green]")


@cache_app.command("info")
def cache_info(ctx: typer.Context) -> None:
    """Show where the folder cache lives and how old it is."""
    state = _state(ctx)
    cache = _cache(state)

    table = Table(title="Folder Cache")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Directory", str(cache.cache_dir))
    table.add_row("TTL", f"{cache.ttl_seconds:.0f}s")

    if state.config.tenant:
        tenant = state.config.tenant
        age = cache.entry_age(tenant)
        table.add_row("Tenant", tenant)
        table.add_row("File", str(cache.cache_file_path(tenant)))
        if age is None:
            table.add_row("Age", "not cached")
        else:
            status = "expired" if age >= cache.ttl_seconds else "fresh"
            table.add_row("Age", f"{age:.0f}s ({status})")

    console.print(table)


# -----------------------------------------------------------------------------
# misc
# -----------------------------------------------------------------------------


@app.command("check")
def check_config(ctx: typer.Context) -> None:
    """Check configuration and authentication."""
    config = _state(ctx).config

    console.print("[bold]Configuration Check[/bold]\n")

    errors = config.validate()
    if errors:
        console.print("[red]Missing configuration:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        console.print("\nPlease set environment variables or create a .env file.")
        raise typer.Exit(EXIT_REMOTE_ERROR)

    console.print(f"[green]API URL:[/green] {config.api_url}")
    if config.client_id:
        console.print(f"[green]Client ID:[/green] {config.client_id[:8]}...")
    if config.tenant:
        console.print(f"[green]Tenant:[/green] {config.tenant}")
    console.print(f"[green]Cache directory:[/green] {config.cache_dir}")

    console.print("\n[bold]Testing authentication...[/bold]")

    try:
        with console.status("Authenticating..."):
            token = TokenManager(config).get_token()
    except (RemoteError, httpx.HTTPError) as e:
        console.print(f"[red]Authentication failed:[/red] {e}")
        raise typer.Exit(EXIT_AUTH_ERROR)

    console.print("[green]Authentication successful![/green]")
    console.print(f"Token: {token[:20]}...")


if __name__ == "__main__":
    app()
