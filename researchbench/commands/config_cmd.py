"""CLI handlers for config commands."""

from __future__ import annotations

import json

import click

from researchbench.config import DEFAULT_CONFIG_PATH, init_config, load_config


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool):
    """Create default configuration file."""
    if DEFAULT_CONFIG_PATH.exists() and not force:
        click.echo(f"Config already exists at {DEFAULT_CONFIG_PATH} (use --force)", err=True)
        return
    path = init_config()
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
def config_show():
    """Show current configuration."""
    config = load_config()
    r = config.research
    click.echo(f"Config file: {config.config_path}")
    if config.mongodb.enabled:
        click.echo(f"  MongoDB: {config.mongodb.uri}/{config.mongodb.database}")
    else:
        click.echo("  MongoDB: disabled (in-memory jobs)")
    click.echo(f"  Research: provider={r.default_provider}, search={r.default_search}")
    click.echo(
        f"  Sources: {r.min_sources}-{r.max_sources}, iterations={r.max_iterations}, "
        f"depth={r.max_depth}, follow_links={r.follow_links}"
    )
    click.echo(f"  Queue: max_concurrent_jobs={config.queue.max_concurrent_jobs}")
    click.echo(
        f"  External calls: timeout={config.external.timeout_seconds}s, "
        f"retries={config.external.max_retries}"
    )

    click.echo("\n  Providers:")
    for name, prov in config.providers.items():
        has_key = "configured" if prov.api_key else "not set"
        click.echo(f"    {name}: model={prov.default_model}, key={has_key}")
    for name, search in config.search.items():
        has_key = "configured" if search.api_key else "not set"
        click.echo(f"    search.{name}: key={has_key}")


def _coerce(value: str):
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        pass
    if value.startswith(("[", "{")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value.

    Key uses dot notation, e.g. research.max_sources, mongodb.enabled,
    queue.max_concurrent_jobs
    """
    import tomli_w

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    path = DEFAULT_CONFIG_PATH
    if not path.exists():
        click.echo("No config file found. Run 'researchbench config init' first.", err=True)
        return

    with open(path, "rb") as f:
        data = tomllib.load(f)

    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = _coerce(value)

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")
