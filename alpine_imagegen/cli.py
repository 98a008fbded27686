"""Thin CLI wrapper for alpine_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from alpine_imagegen import __version__
from alpine_imagegen.config import get_settings, print_settings_json
from alpine_imagegen.errors import ConfigurationError, ImageBuildError

app = typer.Typer(
    name="alpine-imagegen",
    help="Alpine Image Generator - build packaged Alpine Linux root filesystems",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


def _print_json(text: str) -> None:
    """Print JSON without wrapping or markup so it stays parseable."""
    console.print(text, soft_wrap=True, markup=False, highlight=False)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"alpine-imagegen version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Alpine Image Generator - build packaged Alpine Linux root filesystems."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        _print_json(print_settings_json(settings))
    else:
        output_display = str(settings.output_dir) if settings.output_dir else "(cwd)"
        exclude_display = (
            str(settings.exclude_file) if settings.exclude_file else "(built-in)"
        )
        installer_display = (
            str(settings.guest_tools_installer)
            if settings.guest_tools_installer
            else "(none, stage skipped)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Workspace directory: {settings.workspace_dir}")
        console.print(f"  Output directory:    {output_display}")
        console.print(f"  Exclude manifest:    {exclude_display}")
        console.print(f"  Guest tools:         {installer_display}")
        console.print()
        console.print("[bold]Sources:[/bold]")
        console.print(f"  Architecture:        {settings.arch}")
        console.print(f"  Key host:            {settings.key_host}")
        console.print(f"  Trust keys:          {len(settings.trust_keys)}")
        console.print(f"  Nameservers:         {', '.join(settings.nameservers)}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Log file:            {settings.log_file or '(none)'}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Download timeout:    {settings.download_timeout}")
        console.print(
            f"  Command timeout:     {settings.command_timeout or '(none)'}"
        )


@app.command()
def build(
    ctx: typer.Context,
    release: Annotated[
        str | None,
        typer.Option("--release", "-r", help="Alpine release (e.g., 3.2)"),
    ] = None,
    apk_tools: Annotated[
        str | None,
        typer.Option(
            "--apk-tools", "-a", help="apk-tools-static package file on the mirror"
        ),
    ] = None,
    install_dir: Annotated[
        Path | None,
        typer.Option("--install-dir", "-d", help="Existing target root directory"),
    ] = None,
    mirror: Annotated[
        str | None,
        typer.Option("--mirror", "-m", help="Package mirror base URL"),
    ] = None,
    image_name: Annotated[
        str | None,
        typer.Option("--image-name", "-i", help="Base name of the output archive"),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", "-p", help="Display name of the image"),
    ] = None,
    description: Annotated[
        str | None,
        typer.Option("--description", "-D", help="Image description"),
    ] = None,
    docs_url: Annotated[
        str | None,
        typer.Option("--docs-url", "-u", help="Documentation URL"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config", "-c", help="YAML or JSON build configuration (flags win)"
        ),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output-dir", help="Directory for the archive"),
    ] = None,
    exclude_from: Annotated[
        Path | None,
        typer.Option("--exclude-from", help="Archive exclusion manifest"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build and package an Alpine root filesystem image.

    Provisions the base system into the install directory, customizes it,
    and writes <image-name>-<YYYYMMDD>.tar.gz plus a JSON manifest.
    """
    from alpine_imagegen.buildconfig import resolve_build_configuration
    from alpine_imagegen.logging_utils import configure_logging
    from alpine_imagegen.pipeline import StageFailedError, run_pipeline

    settings = get_settings()
    updates = {}
    if output_dir is not None:
        updates["output_dir"] = output_dir
    if exclude_from is not None:
        updates["exclude_file"] = exclude_from
    if updates:
        settings = settings.model_copy(update=updates)

    configure_logging(settings.log_level, settings.log_file)

    overrides = {
        "release": release,
        "apk_tools": apk_tools,
        "install_dir": install_dir,
        "mirror": mirror,
        "image_name": image_name,
        "name": name,
        "description": description,
        "docs_url": docs_url,
    }

    try:
        build_config = resolve_build_configuration(config_file, overrides)
    except ConfigurationError as e:
        console.print(ctx.get_usage(), markup=False)
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=2) from None

    try:
        result = run_pipeline(build_config, settings)
    except StageFailedError as e:
        if json_output:
            output = {
                "success": False,
                "stage": e.stage,
                "code": e.code,
                "error": str(e.cause),
            }
            if e.release_error is not None:
                output["release_error"] = str(e.release_error)
            _print_json(json.dumps(output, indent=2))
        else:
            console.print(
                f"[red]Build failed in stage {e.stage}: {escape(str(e.cause))}[/red]"
            )
            if e.release_error is not None:
                console.print(
                    "[yellow]Warning: mounts could not be released: "
                    f"{escape(str(e.release_error))}[/yellow]"
                )
        raise typer.Exit(code=1) from None
    except ImageBuildError as e:
        if json_output:
            output = {"success": False, "code": e.code, "error": str(e)}
            _print_json(json.dumps(output, indent=2))
        else:
            console.print(f"[red]Build failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        _print_json(json.dumps({"success": True, **result.to_dict()}, indent=2))
    else:
        console.print(f"[green]✓ Built {result.artifact.filename}[/green]")
        console.print(f"  Path:     {result.artifact.path}")
        console.print(f"  Size:     {result.artifact.size_bytes:,} bytes")
        console.print(f"  SHA256:   {result.artifact.sha256[:16]}...")
        console.print(f"  Manifest: {result.manifest_path}")


if __name__ == "__main__":
    app()
