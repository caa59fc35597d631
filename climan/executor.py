"""climan executor - HTTP transport."""

import time

import requests


class RequestResult:
    """Result of an HTTP request."""

    def __init__(self):
        self.status_code: int = 0
        self.headers: dict[str, str] = {}
        self.body: bytes = b""
        self.elapsed_ms: float = 0
        self.headers_ms: float = 0
        self.error: str | None = None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def execute_request(request, timeout: float | None = None) -> RequestResult:
    """Send a materialized request and return a structured result.

    - Follows redirects
    - Captures time to headers and total time
    - Never raises - transport failures are reported in the error field
    """
    result = RequestResult()

    try:
        start = time.monotonic()
        resp = requests.request(
            method=request.method,
            url=request.url,
            headers=request.headers,
            params=request.params or None,
            data=request.body,
            timeout=timeout,
            allow_redirects=True,
        )
        result.elapsed_ms = (time.monotonic() - start) * 1000
        result.headers_ms = resp.elapsed.total_seconds() * 1000

        result.status_code = resp.status_code
        result.headers = dict(resp.headers)
        result.body = resp.content or b""

    except requests.exceptions.Timeout:
        result.error = f"Request timed out after {timeout}s"
    except requests.exceptions.SSLError as e:
        result.error = f"TLS error: {e}"
    except requests.exceptions.ConnectionError as e:
        result.error = f"Connection error: {e}"
    except requests.exceptions.RequestException as e:
        result.error = f"Request failed: {e}"
    except Exception as e:
        result.error = f"Unexpected error: {e}"

    return result
