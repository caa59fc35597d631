"""climan CLI - run HTTP request workflows from YAML files."""

import json
import sys
from pathlib import Path

import click

SCHEMA_TOKEN = "schema"

TOOL_HELP = """\
climan — run a workflow of HTTP requests described in YAML.

Requests run top to bottom. Values extracted from one response are
available as {{variables}} to every request after it.

\b
USAGE
─────
  climan workflow.yaml [options]
  climan request.yaml [options]   # a single request mapping, no requests: list
  climan schema                   # print the workflow JSON Schema

\b
WORKFLOW FILE
─────────────
  \b
  name: login flow                  # optional
  requests:
    - name: login
      method: POST
      uri: "{{BASE_URL}}/auth/login"
      headers:
        Content-Type: application/json
      body:
        content: |
          {"user": "{{user}}", "password": "{{password}}"}
        trim: true
      extractors:
        token: $.access_token       # JSONPath
    - name: me
      method: GET
      uri: "{{BASE_URL}}/me"
      queryParams:
        expand: [profile, roles]    # repeated: expand=profile&expand=roles
      authentication:
        type: bearer                # bearer | basic
        token: "{{token}}"

  A body is either {content: ..., trim: bool} or {file: path}; file
  paths are relative to the workflow file.

\b
VARIABLES
─────────
  When the same name appears in multiple sources (highest wins):
  \b
  1. -v KEY=VALUE           (CLI flag — highest priority)
  2. -f vars.yaml           (later files win)
  3. config defaults.variables
  4. .env file
  5. process environment    (lowest)

  A {{name}} that no source defines stops the workflow with an error.

\b
CONFIG FILE (.climan.yaml)
──────────────────────────
  Resolution order:
    1. -c/--config flag (explicit path)
    2. .climan.yaml / .climan.yml / climan.yaml / climan.yml in CWD
    3. ~/.climan/config.yaml (global)

  \b
  defaults:
    env_file: .env
    timeout: 30                     # seconds, no timeout when unset
    log: false                      # same as -l
    variables:
      BASE_URL: http://localhost:3000
    variable_files: [vars.yaml]     # relative to the config file

\b
OUTPUT
──────
  Per request:
    [1/2] login
    POST http://localhost:3000/auth/login
    STATUS: 200 🟢
    TIME: 45ms (headers 40ms)
    EXTRACTED:
      token: xyz
    BODY:
    {"access_token": "xyz"}

  -l/--log also appends everything to .climan.log in the CWD.
  Exit code 1 when the spec is invalid or any request fails.
"""


@click.command(
    help=TOOL_HELP,
    context_settings={"max_content_width": 88, "help_option_names": ["-h", "--help"]},
)
@click.version_option(None, "-V", "--version", package_name="climan", prog_name="climan")
@click.argument("spec_path")
@click.option(
    "-v",
    "--variables",
    "var",
    multiple=True,
    metavar="KEY=VALUE",
    help="Initial variable. Repeatable.",
)
@click.option(
    "-f",
    "--variables-file",
    "variable_files",
    multiple=True,
    metavar="PATH",
    help="YAML file with a mapping of initial variables. Repeatable.",
)
@click.option(
    "--env-file",
    default=None,
    help="Path of the .env file to read. Default: .env in CWD.",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .climan.yaml in CWD, then ~/.climan/config.yaml.",
)
@click.option(
    "-l",
    "--log",
    "log_enabled",
    is_flag=True,
    default=False,
    help="Append run output to .climan.log in the current directory.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Verbosity of diagnostics on stderr.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-request timeout in seconds. Default: no timeout.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Include headers, query parameters and variables in output.",
)
def main(
    spec_path,
    var,
    variable_files,
    env_file,
    config_file,
    log_enabled,
    log_level,
    timeout,
    verbose,
):
    """Run a workflow of HTTP requests."""
    from climan.core import (
        DEFAULT_ENV_FILE,
        build_variables,
        coerce_variables,
        config_path_value,
        load_config,
        load_env,
        load_spec,
        parse_variables,
        resolve_config_path,
    )
    from climan.errors import ClimanError, VariableSourceError
    from climan.logs import LOG_FILE, setup_logging
    from climan.model import json_schema

    if spec_path == SCHEMA_TOKEN:
        click.echo(json.dumps(json_schema(), indent=2))
        return

    try:
        cli_vars = parse_variables(var)
    except VariableSourceError as e:
        raise click.BadParameter(str(e), param_hint="'-v' / '--variables'") from e

    try:
        config = load_config(resolve_config_path(config_file))
        defaults = config.get("defaults", {})

        log_file = LOG_FILE if (log_enabled or defaults.get("log")) else None
        setup_logging(log_level, log_file)

        spec = load_spec(spec_path)

        if env_file is None and defaults.get("env_file"):
            env_file = config_path_value(config, defaults["env_file"])
        env = load_env(env_file or DEFAULT_ENV_FILE)

        files = [config_path_value(config, p) for p in defaults.get("variable_files") or []]
        files.extend(variable_files)
        variables = build_variables(
            env,
            coerce_variables(defaults.get("variables") or {}, "config"),
            files,
            cli_vars,
        )
        timeout = _resolve_timeout(timeout, defaults.get("timeout"))
    except ClimanError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    run = _cmd_run(
        spec,
        variables,
        env,
        base_dir=Path(spec_path).resolve().parent,
        timeout=timeout,
        verbose=verbose,
    )
    if not run.ok:
        sys.exit(1)


# ── Run ──────────────────────────────────────────────────────────────────


def _cmd_run(spec, variables, env, base_dir, timeout, verbose):
    from climan.output import (
        format_failure,
        format_request,
        format_response,
        format_workflow_header,
    )
    from climan.workflow import run_workflow

    total = len(spec.requests)

    def on_request(step, request, snapshot):
        shown = _own_variables(snapshot, env) if verbose else None
        _emit(format_request(step, request, shown, total=total, verbose=verbose))

    def on_response(step, result, extracted):
        _emit(format_response(result, extracted, verbose=verbose))
        _emit("")

    _emit(format_workflow_header(spec.name, total))
    run = run_workflow(
        spec,
        variables,
        base_dir=base_dir,
        timeout=timeout,
        on_request=on_request,
        on_response=on_response,
    )

    if run.ok:
        _emit(f"Completed {total} of {total} requests.")
    else:
        _emit(format_failure(run), err=True)
        skipped = total - len(run.steps)
        if skipped:
            _emit(f"Skipped {skipped} remaining request{'s' if skipped != 1 else ''}.", err=True)
    return run


# ── Helpers ──────────────────────────────────────────────────────────────


def _emit(text, err=False):
    """Print run output and mirror it to the log file when enabled."""
    from climan.logs import output_logger

    click.echo(text, err=err)
    output_logger.info(text)


def _own_variables(snapshot, env):
    """Variables that did not come straight from the environment."""
    return {k: v for k, v in snapshot.items() if env.get(k) != v}


def _resolve_timeout(*sources):
    """Return the first timeout that is set, or None."""
    for t in sources:
        if t is not None:
            return float(t)
    return None
