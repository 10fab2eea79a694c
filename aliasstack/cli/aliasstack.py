import logging
import os
import sys

import click
from botocore.exceptions import ClientError

from aliasstack import __version__, config
from aliasstack.cloudformation.exceptions import AliasStackError

from .console import console


def _setup_cli_debug():
    from aliasstack.logging.setup import setup_logging

    config.DEBUG = True
    os.environ["DEBUG"] = "1"

    setup_logging(logging.DEBUG)


def _load_options(service_config: str, stage: str, alias: str, region: str, **kwargs):
    from aliasstack.service import load_service

    return load_service(service_config, stage=stage, alias=alias, region=region, **kwargs)


def _fail(error: Exception):
    console.print(f"[red]Error:[/red] {error}")
    if config.DEBUG:
        console.print_exception()
    sys.exit(1)


def service_options(func):
    func = click.option("--region", "-r", help="AWS region of the service")(func)
    func = click.option("--alias", "-a", help="Alias to operate on (defaults to the stage)")(func)
    func = click.option("--stage", "-s", help="Stage of the service")(func)
    func = click.option(
        "--config",
        "-c",
        "service_config",
        type=click.Path(exists=True, dir_okay=False),
        default="serverless.yml",
        show_default=True,
        help="Service configuration file",
    )(func)
    return func


@click.group(name="aliasstack", help="Deploy and manage aliases of a serverless service stage")
@click.version_option(version=__version__, message="%(version)s")
@click.option("--debug", is_flag=True, help="Enable CLI debugging mode")
def aliasstack(debug):
    if debug:
        _setup_cli_debug()
    else:
        from aliasstack.logging.setup import get_log_level_from_config, setup_logging_for_cli

        setup_logging_for_cli(get_log_level_from_config())


@aliasstack.command(
    name="prepare",
    help="Restructure a compiled template into the stage and alias templates without changing any stack",
)
@service_options
@click.option(
    "--template",
    "-t",
    "template_file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Compiled CloudFormation template of the service",
)
@click.option("--master-alias", help="Alias that owns the stage (defaults to the stage)")
def cmd_prepare(service_config, stage, alias, region, template_file, master_alias):
    from aliasstack.cloudformation.deploy import AliasDeployment
    from aliasstack.service import get_user_resources, load_document, load_template

    try:
        options = _load_options(service_config, stage, alias, region, master_alias=master_alias, no_deploy=True)
        deployment = AliasDeployment(options)
        stage_template, alias_template = deployment.prepare(
            load_template(template_file), get_user_resources(load_document(service_config))
        )
        deployment.deploy_alias_stack()
    except (AliasStackError, ValueError) as e:
        _fail(e)
        return

    console.print(
        f"Prepared alias [bold]{options.alias}[/bold]: {len(stage_template.resources)} stage resources, "
        f"{len(alias_template.resources)} alias resources, written to {options.template_dir}"
    )


@aliasstack.command(name="deploy-alias", help="Deploy the stage stack and the alias stack of an alias")
@service_options
@click.option(
    "--template",
    "-t",
    "template_file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Compiled CloudFormation template of the service",
)
@click.option("--master-alias", help="Alias that owns the stage (defaults to the stage)")
def cmd_deploy_alias(service_config, stage, alias, region, template_file, master_alias):
    from aliasstack.cloudformation.deploy import AliasDeployment
    from aliasstack.service import get_user_resources, load_document, load_template

    try:
        options = _load_options(service_config, stage, alias, region, master_alias=master_alias)
        with console.status(f"Deploying alias {options.alias}"):
            AliasDeployment(options).deploy(
                load_template(template_file), get_user_resources(load_document(service_config))
            )
    except (AliasStackError, ValueError) as e:
        _fail(e)
        return

    console.print(f":heavy_check_mark: alias [bold]{options.alias}[/bold] deployed")


@aliasstack.command(name="remove", help="Remove a deployed alias")
@service_options
@click.option("--master-alias", help="Alias that owns the stage (defaults to the stage)")
def cmd_remove(service_config, stage, alias, region, master_alias):
    from aliasstack.cloudformation.remove import AliasRemoval

    if not alias:
        raise click.ClickException("Please specify the alias to remove with --alias")

    try:
        options = _load_options(service_config, stage, alias, region, master_alias=master_alias)
        with console.status(f"Removing alias {options.alias}"):
            AliasRemoval(options).remove_alias()
    except AliasStackError as e:
        _fail(e)
        return

    console.print(f":heavy_check_mark: alias [bold]{options.alias}[/bold] removed")


@aliasstack.command(name="list", help="Show the deployed aliases")
@service_options
@click.option("--verbose", "-v", is_flag=True, help="Show the function versions of every alias")
def cmd_list(service_config, stage, alias, region, verbose):
    from aliasstack.aliases import get_alias_function_versions, list_aliases
    from aliasstack.cloudformation.orchestrator import StackOrchestrator

    try:
        options = _load_options(service_config, stage, alias, region)
        orchestrator = StackOrchestrator(region_name=options.region)
        console.print("[yellow]aliases:[/yellow]")
        for name in list_aliases(orchestrator, options):
            console.print(f"  {name}")
            if verbose:
                console.print("    Functions:")
                for version in get_alias_function_versions(orchestrator, options, name):
                    console.print(f"[yellow]      {version.function_name} -> {version.function_version}[/yellow]")
    except AliasStackError as e:
        _fail(e)


@aliasstack.command(name="update-alias", help="Point an alias of a function to its currently deployed code")
@service_options
@click.option("--function", "-f", "function_name", required=True, help="Name of the deployed function")
def cmd_update_alias(service_config, stage, alias, region, function_name):
    from aliasstack.aliases import update_function_alias

    try:
        options = _load_options(service_config, stage, alias, region)
        function = options.functions.get(function_name) or {}
        deployed_name = function.get("name") or f"{options.service}-{options.stage}-{function_name}"
        version = update_function_alias(deployed_name, options.alias, region=options.region)
    except (AliasStackError, ClientError) as e:
        _fail(e)
        return

    console.print(f"Successfully updated alias: {function_name}@{options.alias} -> {version}")
