from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, TypeVar
import typer

from .auth import GraphTokenProvider
from .build import build_policies
from .config import get_settings
from .discovery import discover_policy_files, read_policy_files
from .exceptions import PolicyKitError
from .logs import configure_logging
from .ordering import resolve_upload_order
from .renumber import renumber_all
from .upload import GraphPolicyClient, load_upload_documents, upload_policies


app = typer.Typer(help="policykit: build, renumber and upload Azure AD B2C custom policies")

T = TypeVar("T")


def _run(action: Callable[[], T]) -> T:
    try:
        return action()
    except PolicyKitError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override POLICYKIT_LOG_LEVEL"),
):
    configure_logging("policykit", level=log_level)


@app.command()
def renumber(
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder holding the policy XML files"),
    ignore: Optional[str] = typer.Option(None, "--ignore", help="Glob of paths to skip, e.g. '**/Environments/**'"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without rewriting files"),
):
    """Renumber OrchestrationStep Order attributes in place."""
    settings = get_settings()
    files = read_policy_files(root, discover_policy_files(root, ignore=ignore))
    originals = [policy_file.data for policy_file in files]
    results = _run(lambda: renumber_all(files, max_depth=settings.max_chain_depth))
    for policy_file, original in zip(files, originals):
        if policy_file.data == original:
            continue
        target = root / policy_file.relative_path
        if not dry_run:
            target.write_text(policy_file.data, encoding="utf-8")
        typer.echo(f"Rewrote {target}")
    total = sum(result.change_count for result in results)
    suffix = " (dry run)" if dry_run else ""
    typer.echo(f"Renumbered {total} step(s) across {len(results)} policies{suffix}")


@app.command()
def build(
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder holding appsettings.json and the policies"),
    out: Path = typer.Option(..., "--out", "-o", help="Output folder; deleted and recreated"),
    renumber_steps: Optional[bool] = typer.Option(
        None, "--renumber/--no-renumber", help="Renumber steps before rendering (default: POLICYKIT_RENUMBER_STEPS)"
    ),
):
    """Render the policies once per environment defined in appsettings.json."""
    settings = get_settings()
    do_renumber = settings.renumber_steps if renumber_steps is None else renumber_steps
    report = _run(
        lambda: build_policies(
            root,
            out,
            renumber=do_renumber,
            settings_file=settings.settings_file_name,
            max_depth=settings.max_chain_depth,
        )
    )
    typer.echo(
        f"Wrote {len(report.written)} file(s) for {len(report.environments)} environment(s) "
        f"from {report.policy_files} policies"
    )


@app.command()
def order(
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder holding the policies to upload"),
):
    """Print the order in which the policies would be uploaded."""
    settings = get_settings()
    documents = load_upload_documents(discover_policy_files(root))
    for policy_id in _run(lambda: resolve_upload_order(documents, max_depth=settings.max_chain_depth)):
        typer.echo(policy_id)


@app.command()
def upload(
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder holding the policies to upload"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve the order without calling Microsoft Graph"),
):
    """Upload the policies to the B2C tenant, base policies first."""
    settings = get_settings()

    def _upload():
        client = None
        if not dry_run:
            client = GraphPolicyClient(GraphTokenProvider.from_settings(settings), settings)
        return upload_policies(root, client, max_depth=settings.max_chain_depth, dry_run=dry_run)

    uploaded = _run(_upload)
    verb = "Would upload" if dry_run else "Uploaded"
    typer.echo(f"{verb} {len(uploaded)} policies: {', '.join(uploaded)}")
