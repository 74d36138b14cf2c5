from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one health check."""

    passed: bool
    error: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def success(cls, status_code: Optional[int] = None) -> "ProbeResult":
        return cls(passed=True, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: Optional[int] = None) -> "ProbeResult":
        return cls(passed=False, error=error, status_code=status_code)


Probe = Callable[[], ProbeResult]


class HealthzProbe:
    """Checks a buildlet ``/healthz`` endpoint over HTTP.

    A 200 response passes. Any other status, any transport error, or no
    complete response within ``timeout`` seconds of wall-clock time fails.
    The request runs on its own thread so an endpoint that trickles bytes
    cannot hold the caller past the deadline.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self) -> ProbeResult:
        session = self.session
        done = threading.Event()
        outcome: Dict[str, Any] = {}

        def request() -> None:
            try:
                outcome["result"] = self._get(session)
            except Exception as exc:
                outcome["error"] = exc
            finally:
                done.set()
                if session is not self.session:
                    session.close()

        threading.Thread(target=request, name="healthz-probe", daemon=True).start()

        if not done.wait(self.timeout):
            # The overrunning request keeps the old session; later probes get a fresh one.
            self.session = requests.Session()
            return ProbeResult.failure(f"GET {self.url}: no complete response within {self.timeout:g}s")

        if "error" in outcome:
            raise outcome["error"]
        return outcome["result"]

    def _get(self, session: requests.Session) -> ProbeResult:
        try:
            response = session.get(self.url, timeout=self.timeout)
        except requests.RequestException as exc:
            return ProbeResult.failure(f"GET {self.url}: {exc}")

        if response.status_code != requests.codes.ok:
            return ProbeResult.failure(
                f"GET {self.url}: unexpected status {response.status_code}",
                status_code=response.status_code,
            )
        return ProbeResult.success(status_code=response.status_code)

    def close(self) -> None:
        self.session.close()
