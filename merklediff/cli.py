"""CLI entry point for merklediff."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
import yaml
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from merklediff_core.config import MerkleDiffConfig, load_config
from merklediff_core.config.loader import CONFIG_FILENAME, DEFAULT_CONFIG_TEMPLATE
from merklediff_core.errors import MerkleDiffError
from merklediff_core.merkle import MerkleTree
from merklediff_core.session import (
    DiffSession,
    SessionReport,
    compare_local,
    compare_remote,
    open_stream,
)
from merklediff_core.transport import InteractiveAsker

app = typer.Typer(
    name="merklediff",
    help="Find the byte ranges where two copies of a large file differ.",
)

config_app = typer.Typer(help="Manage merklediff configuration.")
app.add_typer(config_app, name="config")

EXIT_DIFFERENT = 1
EXIT_FAILED = 2

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

err_console = Console(stderr=True)

# Global state
_config: MerkleDiffConfig | None = None


def _get_config() -> MerkleDiffConfig:
    if _config is None:
        return load_config()
    return _config


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", help=f"Path to {CONFIG_FILENAME}")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILED)


def _configure_logging(cfg: MerkleDiffConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else _LOG_LEVELS[cfg.log_level]
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _apply_overrides(
    cfg: MerkleDiffConfig,
    block_size: int | None = None,
    algorithm: str | None = None,
    refine: bool | None = None,
    refine_block_sizes: list[int] | None = None,
    timeout: float | None = None,
) -> MerkleDiffConfig:
    """Layer command-line options over the loaded config.

    A new --block-size without --refine-block-size keeps only the configured
    refinement sizes that are smaller than it.
    """
    data = cfg.model_dump()
    if block_size is not None:
        data["tree"]["block_size"] = block_size
        if not refine_block_sizes:
            kept = [s for s in cfg.refine.block_sizes if s < block_size]
            if kept:
                data["refine"]["block_sizes"] = kept
            else:
                data["refine"]["enabled"] = False
    if algorithm is not None:
        data["tree"]["algorithm"] = algorithm
    if refine_block_sizes:
        data["refine"]["block_sizes"] = refine_block_sizes
        data["refine"]["enabled"] = True
    if refine is not None:
        data["refine"]["enabled"] = refine
    if timeout is not None:
        data["network"]["timeout"] = timeout
    try:
        return MerkleDiffConfig.model_validate(data)
    except ValidationError as e:
        err_console.print(f"[red]Invalid options:[/red] {e}")
        raise typer.Exit(EXIT_FAILED)


def _display_summary(report: SessionReport) -> None:
    table = Table(title="Comparison")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Block size", str(report.block_size))
    table.add_row("Algorithm", report.algorithm)
    table.add_row("Tree nodes", str(report.node_count))
    table.add_row("Leaves", str(report.leaf_count))
    table.add_row("Exchanges", str(report.exchanges))
    if report.refined:
        table.add_row("Refinement exchanges", str(report.refine_exchanges))
    table.add_row("Mismatched blocks", str(len(report.blocks)))
    err_console.print(table)


def _emit_report(report: SessionReport, verbose: bool) -> None:
    """Print one differing location per line; exit 1 if there are any."""
    if verbose:
        _display_summary(report)

    if report.identical:
        if verbose:
            err_console.print("[green]Files are identical.[/green]")
        return

    if report.refined and report.regions:
        if verbose:
            err_console.print("[red]mismatched bytes:[/red]")
        for region in report.regions:
            if region.length == 1:
                typer.echo(region.offset)
            else:
                typer.echo(f"{region.offset}+{region.length}")
    else:
        if verbose:
            err_console.print("[red]mismatched blocks:[/red]")
        for block in report.blocks:
            typer.echo(block.index)

    raise typer.Exit(EXIT_DIFFERENT)


def _fail(e: Exception) -> typer.Exit:
    err_console.print(f"[red]Comparison did not complete:[/red] {e}")
    return typer.Exit(EXIT_FAILED)


# ---------------------------------------------------------------------------
# Comparison commands
# ---------------------------------------------------------------------------

BlockSizeOption = Annotated[
    int | None,
    typer.Option("--block-size", "-b", min=1, help="Chunk size in bytes (default 1048576)"),
]
AlgorithmOption = Annotated[
    str | None,
    typer.Option("--algorithm", "-a", help="sha256 | blake2b | xxh64 | xxh128"),
]
RefineOption = Annotated[
    bool | None,
    typer.Option("--refine/--no-refine", help="Narrow mismatched blocks down to bytes"),
]
RefineSizeOption = Annotated[
    list[int] | None,
    typer.Option(
        "--refine-block-size",
        "-r",
        help="Refinement block size; repeat for several levels, largest first",
    ),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Increase verbosity")]


@app.command()
def compare(
    filename: Annotated[Path, typer.Argument(help="The file to compare")],
    server: Annotated[
        str | None, typer.Option("--server", "-s", metavar="ADDRESS", help="Listening network address")
    ] = None,
    client: Annotated[
        str | None, typer.Option("--client", "-c", metavar="ADDRESS", help="Destination network address")
    ] = None,
    block_size: BlockSizeOption = None,
    algorithm: AlgorithmOption = None,
    refine: RefineOption = None,
    refine_block_size: RefineSizeOption = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Socket timeout in seconds")
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Compare FILENAME with a peer's copy over the network."""
    if (server is None) == (client is None):
        err_console.print("[red]Error:[/red] pass exactly one of --server or --client")
        raise typer.Exit(EXIT_FAILED)

    cfg = _apply_overrides(
        _get_config(), block_size, algorithm, refine, refine_block_size, timeout
    )
    _configure_logging(cfg, verbose)
    if verbose:
        err_console.print(f"comparing {filename}")

    try:
        report = compare_remote(
            filename,
            address=server if server is not None else client,
            listen=server is not None,
            config=cfg,
        )
    except MerkleDiffError as e:
        raise _fail(e)

    _emit_report(report, verbose)


@app.command()
def local(
    file_a: Annotated[Path, typer.Argument(help="First file")],
    file_b: Annotated[Path, typer.Argument(help="Second file")],
    block_size: BlockSizeOption = None,
    algorithm: AlgorithmOption = None,
    refine: RefineOption = None,
    refine_block_size: RefineSizeOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Compare two local files, running both peers of the protocol in-process."""
    cfg = _apply_overrides(_get_config(), block_size, algorithm, refine, refine_block_size)
    _configure_logging(cfg, verbose)

    try:
        report = compare_local(file_a, file_b, config=cfg)
    except MerkleDiffError as e:
        raise _fail(e)

    _emit_report(report, verbose)


@app.command()
def ask(
    filename: Annotated[Path, typer.Argument(help="The file to verify")],
    block_size: BlockSizeOption = None,
    algorithm: AlgorithmOption = None,
    refine: RefineOption = None,
    refine_block_size: RefineSizeOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Walk the tree of FILENAME, asking an operator whether each hash matches."""
    cfg = _apply_overrides(_get_config(), block_size, algorithm, refine, refine_block_size)
    _configure_logging(cfg, verbose)

    try:
        with open_stream(filename) as stream:
            report = DiffSession(cfg).run(stream, InteractiveAsker())
    except MerkleDiffError as e:
        raise _fail(e)

    _emit_report(report, verbose)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def _node_label(tree: MerkleTree, idx: int) -> str:
    node = tree[idx]
    span = f"bytes {node.offset}-{node.offset + node.length - 1}"
    return f"[cyan]{node.hash.hex()[:16]}[/cyan] [dim]#{idx} depth {node.depth}, {span}[/dim]"


def _add_subtree(branch: Tree, tree: MerkleTree, idx: int, levels: int) -> None:
    if levels <= 0:
        return
    for child in tree[idx].children:
        _add_subtree(branch.add(_node_label(tree, child)), tree, child, levels - 1)


@app.command(name="tree")
def show_tree(
    filename: Annotated[Path, typer.Argument(help="The file to hash")],
    block_size: BlockSizeOption = None,
    algorithm: AlgorithmOption = None,
    depth: Annotated[int, typer.Option("--depth", "-d", min=0, help="Levels below the root to show")] = 3,
    as_json: Annotated[bool, typer.Option("--json", help="Dump every node as JSON")] = False,
) -> None:
    """Build and print the Merkle tree of FILENAME."""
    cfg = _apply_overrides(_get_config(), block_size, algorithm)
    _configure_logging(cfg, False)

    try:
        with open_stream(filename) as stream:
            tree = DiffSession(cfg).build(stream)
    except MerkleDiffError as e:
        raise _fail(e)

    if as_json:
        typer.echo(tree.to_json())
        return

    root = Tree(f"[bold]root[/bold] {_node_label(tree, tree.root_index)}")
    _add_subtree(root, tree, tree.root_index, depth)
    rprint(root)
    levels = " -> ".join(str(n) for n in tree.level_sizes())
    rprint(f"\n[dim]Nodes:[/dim] {len(tree)}  [dim]Levels:[/dim] {levels}")
    rprint(f"[dim]Root hash:[/dim] {tree.root_hash.hex()}")


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default merklediff.yaml in current directory."""
    target = Path(CONFIG_FILENAME)
    if target.exists() and not force:
        rprint(f"[yellow]{CONFIG_FILENAME} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(EXIT_FAILED)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")


if __name__ == "__main__":
    app()
