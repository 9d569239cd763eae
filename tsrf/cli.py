import sys
from pathlib import Path

import click
from loguru import logger


def _options(ctx: click.Context, **overrides):
    from tsrf.engine.log import setup_logging
    from tsrf.engine.settings import get_settings

    settings = get_settings()
    verbose = ctx.obj.get("verbose") if ctx.obj else False
    setup_logging("DEBUG" if verbose else settings.resolve_log_level())

    root = ctx.obj.get("root") if ctx.obj else None
    return settings.to_options().with_overrides(root=root.resolve() if root else None, **overrides)


@click.group(invoke_without_command=True)
@click.option("--verbose", is_flag=True, default=False, help="Print debug logs.")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root holding the root package.json (default: from TSRF_ROOT or the current directory).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, root: Path | None) -> None:
    """tsrf - keeps TypeScript project references in sync with the code."""
    ctx.obj = {"verbose": verbose, "root": root}
    if ctx.invoked_subcommand is None:
        ctx.invoke(watch)


@main.command()
@click.option("--redundant", is_flag=True, default=False, help="Suggest removing dependencies that are no longer used.")
@click.option("--prune-redundant", is_flag=True, default=False, help="Remove dependencies that are no longer used.")
@click.option("--no-compiler", is_flag=True, default=False, help="Do not start the TypeScript compiler.")
@click.pass_context
def watch(
    ctx: click.Context,
    redundant: bool = False,
    prune_redundant: bool = False,
    no_compiler: bool = False,
) -> None:
    """Watch the project and keep references and dependencies in sync (default)."""
    import anyio

    from tsrf.engine.registry import RegistryInvariantViolation
    from tsrf.engine.router import leaf_exceptions
    from tsrf.engine.watcher import serve

    options = _options(
        ctx,
        show_redundant=redundant or None,
        prune_redundant=prune_redundant or None,
        spawn_compiler=False if no_compiler else None,
    )

    fatal: BaseException | None = None
    try:
        anyio.run(serve, options)
    except* RegistryInvariantViolation as group:
        fatal = leaf_exceptions(group)[0]

    if fatal is not None:
        logger.opt(exception=fatal).critical("{}", fatal)
        sys.exit(1)


@main.command()
@click.option("--fix", is_flag=True, default=False, help="Fix the failing checks.")
@click.option("--delete", is_flag=True, default=False, help="With --fix, remove empty workspaces.")
@click.pass_context
def doctor(ctx: click.Context, fix: bool, delete: bool) -> None:
    """Check that the project is configured for project references."""
    import anyio

    from tsrf.engine.doctor import run_doctor

    options = _options(ctx, fix=fix, delete=delete)
    result = anyio.run(run_doctor, options)
    _print_doctor(result)
    sys.exit(result.exit_code)


# ---------------------------------------------------------------------------
# Doctor output
# ---------------------------------------------------------------------------

_STATUS_STYLE = {
    "ok": ("○", "OK", "green"),
    "info": ("●", "OK", "yellow"),
    "fail": ("●", "FAIL", "red"),
    "fixed": ("●", "FIXED", "magenta"),
}


def _print_checks(report) -> None:
    for check in report.checks:
        bullet, label, color = _STATUS_STYLE[check.status]
        click.echo(f"    {click.style(bullet, fg=color)} {check.message}: {click.style(label, fg=color, bold=True)}")
    click.echo()


def _print_doctor(result) -> None:
    for report in result.workspaces:
        click.echo(f"Workspace {click.style(report.path, fg='green', bold=True)}:\n")
        if report.redundant:
            click.echo(f"    {click.style('●', fg='yellow')} The workspace is empty, consider removing it: rm -rf {report.path}\n")
            continue
        _print_checks(report)

    if result.duplicates:
        click.echo(click.style(result.error, fg="red"), err=True)
        for name, paths in result.duplicates.items():
            click.echo(f"    ● {click.style(name, fg='green')}: {', '.join(paths)}", err=True)
        return
    if result.error is not None:
        click.echo(click.style(result.error, fg="red"), err=True)
        return

    if result.root is not None:
        click.echo(f"{click.style('Project root', fg='blue')}:\n")
        _print_checks(result.root)

    if result.redundant:
        click.echo(f"{click.style('►', fg='yellow')} The project contains redundant workspaces, consider removing them:\n")
        click.echo(f"    rm -rf {' '.join(result.redundant)}\n")

    if result.fix:
        click.echo(f"{click.style('►', fg='green')} Everything is fixed! You can start the watch mode now: tsrf")
    elif result.failed:
        click.echo(f"{click.style('►', fg='red')} To automatically fix the failing issues, run: tsrf doctor --fix")
        if result.redundant:
            click.echo("    ...you can also add --delete to remove redundant workspaces: tsrf doctor --fix --delete")
    else:
        click.echo(f"{click.style('►', fg='green')} Everything is OK! You can start the watch mode now: tsrf")


if __name__ == "__main__":
    main()
