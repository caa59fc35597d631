"""climan core - config loading, variables, templating, request materialization."""

import base64
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from climan.errors import (
    BodyFileError,
    SpecParseError,
    UnresolvedVariableError,
    VariableSourceError,
)
from climan.extractors import stringify
from climan.model import ApiSpec, BasicAuth, BearerAuth, ContentBody, FileBody, Request

GLOBAL_DIR = Path.home() / ".climan"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CWD_CONFIG_CANDIDATES = [
    ".climan.yaml",
    ".climan.yml",
    "climan.yaml",
    "climan.yml",
]

DEFAULT_ENV_FILE = ".env"

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")


# ── Config ───────────────────────────────────────────────────────────────


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (hard — no fallthrough if missing)
      2. .climan.yaml (variants) in CWD
      3. ~/.climan/config.yaml
    """
    candidates = [Path(config_file)] if config_file else (
        [Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG]
    )
    for p in candidates:
        if p.exists():
            return p.resolve()
    return None


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty defaults if not found.

    Stores '_config_dir' in the returned dict so relative paths in the
    config resolve against the config file's directory.
    """
    if config_path is None:
        return {"defaults": {}, "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": {}, "_config_dir": None}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise VariableSourceError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise VariableSourceError(f"Config file {path} must be a mapping")
    return {
        "defaults": _check_defaults(data.get("defaults") or {}, path),
        "_config_dir": path.resolve().parent,
    }


def _check_defaults(defaults: Any, path: Path) -> dict:
    """Reject config defaults whose values have the wrong shape."""
    if not isinstance(defaults, dict):
        raise VariableSourceError(f"Config file {path}: 'defaults' must be a mapping")
    variables = defaults.get("variables")
    if variables is not None and not isinstance(variables, dict):
        raise VariableSourceError(f"Config file {path}: 'variables' must be a mapping")
    files = defaults.get("variable_files")
    if files is not None and not isinstance(files, list):
        raise VariableSourceError(f"Config file {path}: 'variable_files' must be a list")
    timeout = defaults.get("timeout")
    if timeout is not None and (
        isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout <= 0
    ):
        raise VariableSourceError(f"Config file {path}: 'timeout' must be a positive number")
    env_file = defaults.get("env_file")
    if env_file is not None and not isinstance(env_file, str):
        raise VariableSourceError(f"Config file {path}: 'env_file' must be a path")
    return defaults


def config_path_value(config: dict, value: str) -> Path:
    """Resolve a path from the config relative to the config file."""
    p = Path(value)
    config_dir = config.get("_config_dir")
    if not p.is_absolute() and config_dir:
        p = Path(config_dir) / p
    return p


# ── Variable sources ─────────────────────────────────────────────────────


def load_env(env_file: str | Path | None = DEFAULT_ENV_FILE) -> dict[str, str]:
    """Load os.environ overlaid with the .env file, if one exists.

    .env values take precedence over the process environment.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(env_file)
        if dotenv_path.is_file():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def parse_variables(specs: Iterable[str]) -> dict[str, str]:
    """Parse KEY=VALUE pairs. Splits on the first '='."""
    variables: dict[str, str] = {}
    for spec in specs:
        if "=" not in spec:
            raise VariableSourceError(f"Invalid variable '{spec}', expected KEY=VALUE")
        key, value = spec.split("=", 1)
        key = key.strip()
        if not key:
            raise VariableSourceError(f"Invalid variable '{spec}', empty name")
        variables[key] = value
    return variables


def coerce_variables(data: Mapping[str, Any], source: str) -> dict[str, str]:
    """Stringify a YAML mapping of variables."""
    variables: dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, dict | list):
            raise VariableSourceError(f"{source}: variable '{key}' must be a scalar")
        variables[str(key)] = "" if value is None else stringify(value)
    return variables


def load_variables_file(path: str | Path) -> dict[str, str]:
    """Read a YAML file holding a flat mapping of variables."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise VariableSourceError(f"Cannot read variables file {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise VariableSourceError(f"Invalid variables file {path}: {e}") from e
    if not isinstance(data, dict):
        raise VariableSourceError(f"Variables file {path} must be a mapping")
    return coerce_variables(data, str(path))


def build_variables(
    env: Mapping[str, str],
    config_vars: Mapping[str, str] | None = None,
    files: Iterable[str | Path] = (),
    cli_vars: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Flatten the initial variable sources into one store.

    Precedence, lowest first: environment (.env over os.environ),
    config variables, variables files in order, -v pairs.
    """
    variables = dict(env)
    variables.update(config_vars or {})
    for path in files:
        variables.update(load_variables_file(path))
    variables.update(cli_vars or {})
    return variables


# ── Templating ───────────────────────────────────────────────────────────


def find_placeholders(template: str) -> list[str]:
    """Return the variable names referenced by a template, in order."""
    return [m.group(1) for m in PLACEHOLDER_RE.finditer(template)]


def resolve(template: str, variables: Mapping[str, str]) -> str:
    """Replace every {{NAME}} placeholder with its value.

    Raises UnresolvedVariableError for names missing from *variables*.
    Substituted values are not scanned again.
    """

    def _replace(m: re.Match) -> str:
        name = m.group(1)
        if name not in variables:
            raise UnresolvedVariableError(name)
        return str(variables[name])

    return PLACEHOLDER_RE.sub(_replace, template)


# ── Materialization ──────────────────────────────────────────────────────


@dataclass
class ConcreteRequest:
    """A fully resolved, transport-ready request."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: list[tuple[str, str]] = field(default_factory=list)
    body: bytes | None = None


def serialize_param(name: str, value: Any, variables: Mapping[str, str]) -> list[tuple[str, str]]:
    """Serialize one query parameter into (name, value) pairs.

    Lists become repeated parameters; nested lists are flattened.
    """
    if isinstance(value, list):
        pairs: list[tuple[str, str]] = []
        for item in value:
            pairs.extend(serialize_param(name, item, variables))
        return pairs
    if isinstance(value, str):
        return [(name, resolve(value, variables))]
    return [(name, stringify(value))]


def build_auth_headers(auth, variables: Mapping[str, str]) -> dict[str, str]:
    """Build the Authorization header for an authentication block.

    Supports:
    - basic: Authorization: Basic <b64(username:password)>
    - bearer: Authorization: Bearer <token>
    """
    if auth is None:
        return {}

    if isinstance(auth, BasicAuth):
        username = resolve(auth.username, variables)
        password = resolve(auth.password, variables) if auth.password is not None else ""
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
        return {"Authorization": f"Basic {credentials}"}

    if isinstance(auth, BearerAuth):
        token = resolve(auth.token, variables)
        return {"Authorization": f"Bearer {token}"}

    return {}


def read_body(body, variables: Mapping[str, str], base_dir: Path | None = None) -> bytes | None:
    """Produce the request body bytes."""
    if body is None:
        return None

    if isinstance(body, FileBody):
        path = Path(resolve(body.file, variables))
        if not path.is_absolute() and base_dir is not None:
            path = Path(base_dir) / path
        try:
            return path.read_bytes()
        except OSError as e:
            raise BodyFileError(path, e.strerror or str(e)) from e

    if isinstance(body, ContentBody):
        content = resolve(body.content, variables)
        if body.trim:
            content = content.strip()
        return content.encode("utf-8")

    return None


def materialize(
    request: Request,
    variables: Mapping[str, str],
    base_dir: Path | None = None,
) -> ConcreteRequest:
    """Build a ConcreteRequest from a Request and a variables snapshot.

    Does not modify *variables*. Authentication is applied last and
    replaces any Authorization header given in ``headers``.
    """
    url = resolve(request.uri, variables)

    headers = {k: resolve(v, variables) for k, v in (request.headers or {}).items()}

    params: list[tuple[str, str]] = []
    for name, value in (request.query_params or {}).items():
        params.extend(serialize_param(name, value, variables))

    body = read_body(request.body, variables, base_dir)

    auth_headers = build_auth_headers(request.authentication, variables)
    if auth_headers:
        headers = {k: v for k, v in headers.items() if k.lower() != "authorization"}
        headers.update(auth_headers)

    return ConcreteRequest(
        method=request.method.value,
        url=url,
        headers=headers,
        params=params,
        body=body,
    )


# ── Spec loading ─────────────────────────────────────────────────────────


def _format_validation_error(error: ValidationError) -> list[str]:
    problems = []
    for err in error.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "(root)"
        problems.append(f"{loc}: {err['msg']}")
    return problems


def parse_spec(data: Any, source: str = "<data>") -> ApiSpec:
    """Validate already-deserialized YAML data into an ApiSpec.

    A document without a 'requests' key but with a 'uri' is a single request
    file and runs as a one-step workflow.
    """
    if not isinstance(data, dict):
        raise SpecParseError(source, ["document must be a mapping with a 'requests' key"])
    try:
        if "requests" not in data and "uri" in data:
            return ApiSpec(requests=[Request.model_validate(data)])
        return ApiSpec.model_validate(data)
    except ValidationError as e:
        raise SpecParseError(source, _format_validation_error(e)) from e


def load_spec(path: str | Path) -> ApiSpec:
    """Read and validate a workflow YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise SpecParseError(path, [e.strerror or str(e)]) from e
    except yaml.YAMLError as e:
        raise SpecParseError(path, [str(e)]) from e
    return parse_spec(data, str(path))
