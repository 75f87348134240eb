#!/usr/bin/env python3
"""
CLI for the contract engine

Commands:
    export  - Build a service and write its OpenAPI document
    check   - Build a service and report what it contains

TARGET is "module:attribute", where the attribute is a built ApiService, a
DocumentAssembler, or a zero-argument callable returning either.

Usage:
    api-contracts export myapp.api:service
    api-contracts export myapp.api:build_service --format yaml --output openapi.yaml
    api-contracts check myapp.api:service
"""

import importlib
import sys

import click

from .document import ApiService, DocumentAssembler
from .errors import BuildError


def load_service(target: str) -> ApiService:
    """
    Resolve TARGET to a built service.

    Raises:
        click.BadParameter: If TARGET cannot be imported or is the wrong kind of object
        BuildError: If building the service fails
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise click.BadParameter(f"expected 'module:attribute', got '{target}'", param_hint="TARGET")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import '{module_name}': {e}", param_hint="TARGET")

    obj = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise click.BadParameter(f"'{module_name}' has no attribute '{attribute}'", param_hint="TARGET")

    if callable(obj) and not isinstance(obj, (ApiService, DocumentAssembler)):
        obj = obj()
    if isinstance(obj, DocumentAssembler):
        obj = obj.build()
    if not isinstance(obj, ApiService):
        raise click.BadParameter(
            f"'{target}' resolved to {type(obj).__name__}, expected ApiService or DocumentAssembler",
            param_hint="TARGET",
        )
    return obj


@click.group()
@click.version_option(version="1.0.0", prog_name="api-contracts")
def cli():
    """api-contracts CLI - Export and check OpenAPI documents."""
    pass


@cli.command("export")
@click.argument("target")
@click.option("--format", "output_format", type=click.Choice(["json", "yaml"]), default="json",
              show_default=True, help="Document format")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True),
              help="Write to FILE instead of stdout")
def export(target, output_format, output):
    """
    Build TARGET and write its OpenAPI document.

    TARGET: module:attribute of the service
    """
    try:
        service = load_service(target)
    except BuildError as e:
        click.secho(f"Build failed: {type(e).__name__}: {e}", fg="red", err=True)
        sys.exit(1)

    text = service.spec_yaml if output_format == "yaml" else service.spec_json + "\n"
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        click.echo(f"Wrote {output_format.upper()} document to {output}", err=True)
    else:
        click.echo(text, nl=False)


@cli.command("check")
@click.argument("target")
def check(target):
    """
    Build TARGET and print an operation / schema summary.

    Exits non-zero with the build error when the declaration is invalid.
    """
    try:
        service = load_service(target)
    except BuildError as e:
        click.secho(f"Build failed: {type(e).__name__}: {e}", fg="red", err=True)
        sys.exit(1)

    document = service.document
    summary = service.summary()
    click.secho(f"{document.info.title} {document.info.version}", bold=True)
    click.echo(
        f"  {summary['paths']} paths, {summary['operations']} operations, "
        f"{summary['webhooks']} webhooks, {summary['schemas']} schemas"
    )
    click.echo()
    for path, methods in document.paths.items():
        for method, operation in methods.items():
            click.echo(f"  {method.upper():7} {path}  ({operation.operation_id})")
    click.secho("OK", fg="green")


if __name__ == "__main__":
    cli()
