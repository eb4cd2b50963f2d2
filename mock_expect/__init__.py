"""
mock-expect: a mock HTTP server for testing HTTP clients.

Register expectations (request matcher, call-count constraint, responder),
drive real HTTP traffic at the server, and let teardown verify that every
expectation was met and no unexpected request arrived.

    from mock_expect import Expectation, MockServer
    from mock_expect import matchers as m, responders as r

    with MockServer.run() as server:
        server.expect(
            Expectation.matching(m.method_path("GET", "/foo")).respond_with(r.status_code(200))
        )
        client.get(server.url("/foo"))

Expectations are tried in registration order and the first eligible one
wins, so register specific expectations before catch-alls.
"""

from . import matchers, responders
from .config import ConfigError, ExpectationFile, ServerSettings, load_config
from .expectation import Expectation, ExpectationBuilder
from .headers import Headers
from .models import HttpRequest, HttpResponse, UnmatchedRequest, VerificationReport, Violation
from .pool import ServerPool
from .registry import ExpectationRegistry
from .responders import ResponderCancelled
from .server import MockServer
from .times import Times
from .verifier import VerificationError

__all__ = [
    # Matching and responding
    "matchers",
    "responders",
    "Expectation",
    "ExpectationBuilder",
    "Times",

    # Runtime
    "MockServer",
    "ServerPool",
    "ExpectationRegistry",
    "ServerSettings",

    # Models
    "Headers",
    "HttpRequest",
    "HttpResponse",
    "UnmatchedRequest",
    "Violation",
    "VerificationReport",

    # Errors
    "VerificationError",
    "ResponderCancelled",
    "ConfigError",

    # Files
    "ExpectationFile",
    "load_config",
]

__version__ = "0.1.0"
