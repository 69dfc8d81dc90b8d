"""CLI entry point for GitHub Vault."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.traceback import install as install_traceback

from . import __version__
from .doctor import Doctor
from .filesystem import LocalFileSystem
from .git_ops import GitError, create_backend, group_by_kind
from .host import WATCH_DEBOUNCE_MS, ConsoleHost, VaultWatcher
from .obsidian_config import (
    SettingsError,
    SyncConfig,
    find_vault_path,
    load_settings,
    save_settings,
    settings_path,
)
from .repo_state import REMOTE_NAME
from .status import reduce_status
from .sync import SyncOrchestrator

install_traceback()
console = Console()


def get_vault_path(vault_path: str | None) -> Path:
    """Resolve vault path from argument or auto-detect."""
    if vault_path:
        path = Path(vault_path).expanduser().resolve()
        if not path.exists():
            console.print(f"[red]Error: Vault path does not exist: {path}[/red]")
            sys.exit(1)
        return path

    detected = find_vault_path()
    if detected:
        path = Path(detected).resolve()
        console.print(f"[green]Auto-detected vault: {path}[/green]")
        return path

    console.print("[red]Error: Could not auto-detect Obsidian vault. Use --vault-path.[/red]")
    sys.exit(1)


def get_config(ctx: click.Context, vault: Path) -> SyncConfig:
    """Load vault settings with command-line overrides applied."""
    try:
        config = load_settings(vault)
    except SettingsError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    return config.with_overrides(personal_access_token=ctx.obj["token"])


def build_orchestrator(ctx: click.Context, show_status: bool = True) -> tuple[SyncOrchestrator, ConsoleHost]:
    vault = get_vault_path(ctx.obj["vault_path"])
    config = get_config(ctx, vault)
    host = ConsoleHost(console, show_status=show_status)
    orchestrator = SyncOrchestrator(config, LocalFileSystem(vault), host)
    return orchestrator, host


def run_setup(orchestrator: SyncOrchestrator) -> None:
    try:
        ready = orchestrator.setup()
    except (GitError, OSError) as e:
        console.print(f"[red]Setup failed: {escape(str(e))}[/red]")
        sys.exit(1)
    if not ready:
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="github-vault")
@click.option("--vault-path", "-v", type=str, help="Path to Obsidian vault")
@click.option(
    "--token",
    envvar="GITHUB_VAULT_TOKEN",
    type=str,
    help="Personal access token for push/pull (overrides settings)",
)
@click.option("--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, vault_path: str | None, token: str | None, verbose: bool) -> None:
    """Keep an Obsidian vault in sync with a GitHub repository."""
    ctx.ensure_object(dict)
    ctx.obj["vault_path"] = vault_path
    ctx.obj["token"] = token
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(level=logging.DEBUG)


@cli.command()
@click.pass_context
def setup(ctx: click.Context) -> None:
    """Initialize the repository, set the remote and configure .gitignore."""
    orchestrator, _ = build_orchestrator(ctx)
    run_setup(orchestrator)
    console.print(f"[green]Vault ready: {orchestrator.fs.root}[/green]")
    orchestrator.shutdown()


@cli.command()
@click.pass_context
def push(ctx: click.Context) -> None:
    """Commit all changes and push them to the remote."""
    orchestrator, _ = build_orchestrator(ctx)
    run_setup(orchestrator)
    ok = orchestrator.push()
    orchestrator.shutdown()
    if not ok:
        sys.exit(1)


@cli.command()
@click.pass_context
def pull(ctx: click.Context) -> None:
    """Pull changes from the remote."""
    orchestrator, _ = build_orchestrator(ctx)
    run_setup(orchestrator)
    ok = orchestrator.pull()
    orchestrator.shutdown()
    if not ok:
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Check sync status of vault."""
    vault = get_vault_path(ctx.obj["vault_path"])
    config = get_config(ctx, vault)

    try:
        backend = create_backend(config.backend, vault, config.personal_access_token)
    except GitError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    if not backend.is_initialized():
        console.print("[red]Error: Not a Git repository. Run 'setup' first.[/red]")
        sys.exit(1)

    try:
        changes = backend.status_list()
        remote = backend.get_remote_url(REMOTE_NAME)
    except GitError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    finally:
        backend.close()

    signal = reduce_status(changes)

    console.print(f"\n[bold]Vault:[/bold] {vault}")
    console.print(f"[bold]Branch:[/bold] {config.branch_name or 'Not configured'}")
    console.print(f"[bold]Remote:[/bold] {remote or 'Not configured'}")
    console.print(f"\n[{signal.color.value}]{signal.label}[/{signal.color.value}]")

    for kind, paths in group_by_kind(changes).items():
        console.print(f"\n[bold]{kind.value.capitalize()} ({len(paths)}):[/bold]")
        for path in paths[:10]:
            console.print(f"  • {path}")
        if len(paths) > 10:
            console.print(f"  ... and {len(paths) - 10} more")


@cli.command()
@click.option(
    "--debounce",
    default=WATCH_DEBOUNCE_MS,
    show_default=True,
    help="Milliseconds to group file changes before refreshing the status",
)
@click.pass_context
def watch(ctx: click.Context, debounce: int) -> None:
    """Watch the vault and keep the uncommitted-change status live."""
    orchestrator, host = build_orchestrator(ctx)
    run_setup(orchestrator)

    watcher = VaultWatcher(orchestrator.fs, host.notify_file_change, debounce=debounce)
    console.print(f"[blue]Watching {orchestrator.fs.root} (Ctrl+C to stop)[/blue]")
    try:
        watcher.run()
    except KeyboardInterrupt:
        console.print("\n[blue]Stopped watching[/blue]")
    finally:
        orchestrator.shutdown()


@cli.command()
@click.option("--fix", is_flag=True, help="Attempt to fix issues automatically")
@click.pass_context
def doctor(ctx: click.Context, fix: bool) -> None:
    """Diagnose common issues with vault Git setup."""
    vault = get_vault_path(ctx.obj["vault_path"])
    config = get_config(ctx, vault)

    doc = Doctor(vault, config)
    issues = doc.run_checks(fix=fix)

    if not issues:
        console.print("[green]✓ All checks passed![/green]")
        return

    console.print(f"\n[yellow]Found {len(issues)} issue(s):[/yellow]")
    for issue in issues:
        status = "[green]✓ Fixed[/green]" if issue.get("fixed") else "[red]✗[/red]"
        console.print(f"{status} {escape(issue['message'])}")

    if any(not issue.get("fixed") for issue in issues):
        sys.exit(1)


@cli.group()
def config() -> None:
    """Show or change the vault's sync settings."""


@config.command(name="show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the current settings."""
    vault = get_vault_path(ctx.obj["vault_path"])
    settings = get_config(ctx, vault)

    console.print(f"[bold]Settings file:[/bold] {settings_path(vault)}")
    console.print(f"[bold]Remote URL:[/bold] {settings.remote_url or 'Not configured'}")
    console.print(f"[bold]Branch:[/bold] {settings.branch_name or 'Not configured'}")
    console.print(f"[bold]Token:[/bold] {'********' if settings.personal_access_token else 'Not set'}")
    console.print(f"[bold]Backend:[/bold] {settings.backend}")
    console.print(f"[bold]Pull mode:[/bold] {'rebase' if settings.pull_rebase else 'merge'}")


@config.command(name="set")
@click.option("--remote-url", "-r", type=str, help="Remote repository URL")
@click.option("--branch", "-b", type=str, help="Branch to push and pull")
@click.option("--token", type=str, help="Personal access token")
@click.option("--backend", type=click.Choice(["gitpython", "cli"]), help="Git backend")
@click.option("--pull-rebase/--pull-merge", default=None, help="Rebase or merge when pulling")
@click.pass_context
def config_set(
    ctx: click.Context,
    remote_url: str | None,
    branch: str | None,
    token: str | None,
    backend: str | None,
    pull_rebase: bool | None,
) -> None:
    """Update settings; options not given keep their current value."""
    vault = get_vault_path(ctx.obj["vault_path"])

    try:
        current = load_settings(vault)
        updated = current.with_overrides(
            remote_url=remote_url.strip() if remote_url is not None else None,
            branch_name=branch.strip() if branch is not None else None,
            personal_access_token=token,
            backend=backend,
            pull_rebase=pull_rebase,
        )
        path = save_settings(vault, updated)
    except SettingsError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    console.print(f"[green]Saved settings to: {path}[/green]")
    if not updated.is_complete:
        console.print("[yellow]Note: set both --remote-url and --branch to enable sync[/yellow]")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
