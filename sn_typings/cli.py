"""
CLI Entry Point

Typer-based command line interface for the ServiceNow typings generator.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sn_typings.config import ConfigLoader, GeneratorConfig
from sn_typings.core.cancellation import CancellationToken, OperationCancelled
from sn_typings.core.logger import GenerationLogger
from sn_typings.core.rendering import NamespaceGrouper, OutputDestination, OutputDestinationConflict, Renderer
from sn_typings.core.schema import (
    ElementComparer,
    EntityCache,
    InheritanceResolver,
    RenderMode,
    SchemaLoader,
    TableLoadError,
    TypeClassifier,
)
from sn_typings.remote import (
    AccessTokenProvider,
    RemoteAPIError,
    RemoteConnectionError,
    RemoteSchemaSource,
    TableApiClient,
)


# Initialize Typer app
app = typer.Typer(
    name="sn-typings",
    help="ServiceNow Typings Generator - Render TypeScript declarations from instance table schema",
    add_completion=False,
)

console = Console()


def load_config(
    config_path: Optional[str],
    url: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> GeneratorConfig:
    """Load a configuration file, or build one from connection options."""
    if config_path:
        loader = ConfigLoader()
        try:
            config = loader.load(config_path)
        except FileNotFoundError:
            console.print(f"[red]Error:[/] Configuration file not found: {config_path}")
            raise typer.Exit(1)
        except ValueError as e:
            console.print(f"[red]Configuration error:[/] {e}")
            raise typer.Exit(1)
        instance_overrides = {k: v for k, v in (("url", url), ("username", username), ("password", password)) if v}
        if instance_overrides:
            data = config.model_dump()
            data["instance"].update(instance_overrides)
            config = GeneratorConfig.model_validate(data)
        return config

    if not (url and username and password):
        console.print("[red]Error:[/] Provide a configuration file or --url, --user and --password")
        raise typer.Exit(1)
    try:
        return GeneratorConfig.model_validate({
            "instance": {"url": url, "username": username, "password": password},
        })
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        raise typer.Exit(1)


def create_client(config: GeneratorConfig, logger: GenerationLogger | None = None) -> TableApiClient:
    """Create the Table API client for the configured instance."""
    instance = config.instance
    token_provider = None
    if instance.uses_oauth:
        token_provider = AccessTokenProvider(
            url=instance.url,
            client_id=instance.client_id or "",
            client_secret=instance.client_secret or "",
            username=instance.username,
            password=instance.password,
            timeout=instance.timeout,
        )
    return TableApiClient(
        url=instance.url,
        username=instance.username,
        password=instance.password,
        token_provider=token_provider,
        timeout=instance.timeout,
        retry_attempts=instance.retry_attempts,
        retry_delay=instance.retry_delay,
        on_request=logger.log_request if logger else None,
    )


def create_cache(config: GeneratorConfig, fqdn: str) -> tuple[EntityCache, Path | None]:
    """Create the entity cache and its snapshot path (None when caching is off)."""
    cache = EntityCache(fqdn, ttl_hours=config.cache.ttl_hours)
    if not config.cache.enabled:
        return cache, None
    return cache, Path(config.cache.path) / f"{fqdn.lower()}.json"


def create_renderer(config: GeneratorConfig) -> Renderer:
    mode = config.render.render_mode
    comparer = ElementComparer(mode, compare_comments=config.render.compare_comments)
    return Renderer(mode, InheritanceResolver(comparer))


@app.command()
def generate(
    tables: Optional[list[str]] = typer.Argument(None, help="Tables to render (overrides the configuration)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to configuration file (YAML or JSON)"),
    url: Optional[str] = typer.Option(None, "--url", envvar="SN_URL", help="Instance URL"),
    username: Optional[str] = typer.Option(None, "--user", "-u", envvar="SN_USERNAME", help="User name"),
    password: Optional[str] = typer.Option(None, "--password", "-p", envvar="SN_PASSWORD", help="Password"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Render mode: global (g) or scoped (s)"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing output file"),
    include_referenced: bool = typer.Option(False, "--include-referenced", help="Also render referenced tables"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cache snapshot and re-fetch"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Render TypeScript declarations for the given tables.

    Example:
        sn-typings generate incident problem --url https://dev1234.service-now.com -o types.d.ts
    """
    config = load_config(config_path, url, username, password)

    render = config.render
    try:
        render_mode = RenderMode.from_string(mode) if mode else render.render_mode
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)
    table_names = list(dict.fromkeys(tables)) if tables else config.tables
    if not table_names:
        console.print("[red]Error:[/] No tables given")
        raise typer.Exit(1)

    config = config.model_copy(update={
        "render": render.model_copy(update={
            "mode": render_mode.value,
            "output": output or render.output,
            "force": force or render.force,
            "include_referenced_tables": include_referenced or render.include_referenced_tables,
        }),
    })

    # Report destination conflicts before any fetch
    destination = OutputDestination(config.render.output, force=config.render.force)
    try:
        destination.check()
    except OutputDestinationConflict as e:
        console.print(f"[red]Output error:[/] {e}")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold]Instance: {config.instance.url}[/]\n"
        f"Mode: {render_mode.value}\n"
        f"Tables: {', '.join(table_names)}\n"
        f"Output: {destination.path}",
        title="Typings Generation",
    ))

    logger = GenerationLogger(
        output_dir=config.logging.output_dir,
        console_output=config.logging.console_output,
        level="DEBUG" if verbose else config.logging.level,
    )
    client = create_client(config, logger)
    cache, snapshot = create_cache(config, client.fqdn)
    summary = logger.start_run(client.fqdn, mode=render_mode.value, output=str(destination.path))
    summary.tables_requested = len(table_names)

    if snapshot is not None and not refresh:
        if cache.load(snapshot):
            logger.log_info(f"Loaded cache snapshot {snapshot}")

    cancellation = CancellationToken()
    client.cancellation = cancellation
    loader = SchemaLoader(
        RemoteSchemaSource(client, logger),
        cache,
        logger,
        max_workers=config.max_workers,
        include_referenced_tables=config.render.include_referenced_tables,
        refresh=refresh,
    )

    try:
        result = loader.load_tables(table_names, cancellation)
        if not result.loaded:
            logger.log_error("No tables could be loaded")
            logger.end_run(export=config.logging.export_json)
            raise typer.Exit(1)

        text = create_renderer(config).render(NamespaceGrouper().group(result.tables), cancellation)
        destination.write(text)
        summary.tables_rendered = len(result.tables)
    except (KeyboardInterrupt, OperationCancelled):
        cancellation.cancel()
        summary.cancelled = True
        logger.log_warning("Cancelled, no output written")
        logger.end_run(export=config.logging.export_json)
        raise typer.Exit(130)
    except OutputDestinationConflict as e:
        console.print(f"[red]Output error:[/] {e}")
        raise typer.Exit(1)
    except (RemoteConnectionError, RemoteAPIError) as e:
        console.print(f"[red]Remote error:[/] {e}")
        raise typer.Exit(1)
    finally:
        client.close()

    if snapshot is not None:
        cache.save(snapshot)

    logger.log_success(f"Wrote {destination.path}")
    logger.end_run(export=config.logging.export_json)
    if config.logging.export_json:
        console.print(f"\nDiagnostics exported to: {config.logging.output_dir}/")
    if result.failed:
        raise typer.Exit(2)


@app.command("inspect-table")
def inspect_table(
    name: str = typer.Argument(..., help="Table name (e.g., incident)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to configuration file"),
    url: Optional[str] = typer.Option(None, "--url", envvar="SN_URL", help="Instance URL"),
    username: Optional[str] = typer.Option(None, "--user", "-u", envvar="SN_USERNAME", help="User name"),
    password: Optional[str] = typer.Option(None, "--password", "-p", envvar="SN_PASSWORD", help="Password"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Render mode: global (g) or scoped (s)"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cache snapshot and re-fetch"),
):
    """
    Show a table's columns, their wrappers and how they relate to the superclass.

    Example:
        sn-typings inspect-table problem -c sn_typings.yaml
    """
    config = load_config(config_path, url, username, password)
    try:
        render_mode = RenderMode.from_string(mode) if mode else config.render.render_mode
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    logger = GenerationLogger(console_output=False)
    client = create_client(config, logger)
    cache, snapshot = create_cache(config, client.fqdn)
    if snapshot is not None and not refresh:
        cache.load(snapshot)

    loader = SchemaLoader(RemoteSchemaSource(client, logger), cache, logger, max_workers=config.max_workers, refresh=refresh)
    try:
        table = loader.load_table(name)
    except TableLoadError as e:
        console.print(f"[red]Table error:[/] {e}")
        raise typer.Exit(1)
    except (RemoteConnectionError, RemoteAPIError) as e:
        console.print(f"[red]Remote error:[/] {e}")
        raise typer.Exit(1)
    finally:
        client.close()

    if snapshot is not None:
        cache.save(snapshot)

    classifier = TypeClassifier(render_mode)
    partition = InheritanceResolver(ElementComparer(render_mode, config.render.compare_comments)).partition_table(table)
    chain = table.super_class_chain()

    console.print(f"\n[bold]{table.name}[/] ({table.label})")
    console.print(f"  Extends: {' -> '.join(t.name for t in chain) if chain else ('IBaseRecord' if partition.extends_base_record else '-')}")
    if table.package is not None:
        console.print(f"  Package: {table.package.description}")
    if table.number_prefix:
        console.print(f"  Auto-number prefix: {table.number_prefix}")

    status = {}
    for element in partition.declared:
        status[id(element)] = "[green]declared[/]"
    for element in partition.overridden:
        status[id(element)] = "[yellow]override[/]"
    for element in partition.inherited_unchanged:
        status[id(element)] = "[dim]inherited[/]"

    grid = Table(show_header=True, header_style="bold")
    grid.add_column("Element", style="cyan")
    grid.add_column("Label")
    grid.add_column("Type")
    grid.add_column("Wrapper")
    grid.add_column("Reference")
    grid.add_column("Status")

    for element in table.elements:
        classification = classifier.classify(element.type_name)
        wrapper = classifier.type_name_for(element.type_name)
        if classification.explicit:
            wrapper = f"{wrapper} [magenta](explicit)[/]"
        grid.add_row(
            element.name,
            element.label,
            element.type_name or "",
            wrapper,
            element.reference_name or "",
            status.get(id(element), "[dim]base record[/]"),
        )

    console.print(grid)
    console.print(
        f"\n  Declared: {len(partition.declared)}  "
        f"Overridden: {len(partition.overridden)}  "
        f"Inherited: {len(partition.inherited_unchanged)}"
    )


@app.command("test-connection")
def test_connection(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to configuration file"),
    url: Optional[str] = typer.Option(None, "--url", envvar="SN_URL", help="Instance URL"),
    username: Optional[str] = typer.Option(None, "--user", "-u", envvar="SN_USERNAME", help="User name"),
    password: Optional[str] = typer.Option(None, "--password", "-p", envvar="SN_PASSWORD", help="Password"),
):
    """
    Test connection to the instance's Table API.
    """
    config = load_config(config_path, url, username, password)

    console.print("\n[bold]Testing connection[/]")
    console.print(f"  URL: {config.instance.url}")
    console.print(f"  Username: {config.instance.username}")
    console.print(f"  Auth: {'OAuth' if config.instance.uses_oauth else 'Basic'}")

    client = create_client(config)
    try:
        client.test_connection()
        console.print("  [green]✓ Table API reachable[/]")
        source = RemoteSchemaSource(client)
        record = source.get_table_by_name("sys_db_object")
        if record is not None:
            console.print(f"  [green]✓ Schema readable[/] ({record.label or record.name})")
        console.print("\n[green]Connection test successful![/]")
    except (RemoteConnectionError, RemoteAPIError) as e:
        console.print(f"\n[red]Connection failed:[/] {e}")
        raise typer.Exit(1)
    finally:
        client.close()


@app.command("init-config")
def init_config(
    output: str = typer.Argument("sn_typings.yaml", help="Output configuration file path"),
):
    """
    Create an example configuration file.
    """
    ConfigLoader.create_example_config(output)
    console.print(f"[green]Example configuration created:[/] {output}")
    console.print("\nEdit this file and set the following environment variables:")
    console.print("  - SN_URL")
    console.print("  - SN_USERNAME")
    console.print("  - SN_PASSWORD")


@app.command()
def version():
    """Show version information."""
    from sn_typings import __version__
    console.print(f"ServiceNow Typings Generator v{__version__}")


if __name__ == "__main__":
    app()
