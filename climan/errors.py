"""climan errors - spec, variable source and per-request failures."""


class ClimanError(Exception):
    """Base class for every error climan reports to the user."""


class SpecParseError(ClimanError):
    """The workflow file could not be read or does not match the schema."""

    def __init__(self, source, problems: list[str] | None = None):
        self.source = str(source)
        self.problems = problems or []
        message = f"Invalid workflow spec {self.source}"
        if self.problems:
            message += ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class VariableSourceError(ClimanError):
    """A .env, config or variables file could not be turned into variables."""


class RequestError(ClimanError):
    """A failure local to one request. Always aborts the workflow."""


class UnresolvedVariableError(RequestError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unresolved variable '{name}'")


class BodyFileError(RequestError):
    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot read body file {self.path}: {reason}")


class TransportError(RequestError):
    """Connection, TLS or protocol failure while sending a request."""


class ResponseParseError(RequestError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Response body is not valid JSON: {reason}")


class ExtractionError(RequestError):
    def __init__(self, rule: str, expression: str):
        self.rule = rule
        self.expression = expression
        super().__init__(f"Extractor '{rule}' ({expression}) matched nothing")
