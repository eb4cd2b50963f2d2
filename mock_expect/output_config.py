"""Log format resolution for the mock server."""

import os
from typing import Literal


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "MOCK_EXPECT_LOG_FORMAT"
CI_ENV_VARS = ("CI", "JENKINS_HOME", "GITLAB_CI", "GITHUB_ACTIONS")


def get_log_format(cli_override: str | None = None) -> LogFormat:
    """
    Get the log format with priority: CLI parameter > Environment variable > Default.

    Accepted values are ``json``, ``console`` (colours), ``plain`` (no colours)
    and the aliases ``rich``/``auto`` for ``console``. The default is
    ``console``, or ``plain`` when a CI environment is detected.

    Args:
        cli_override: Optional CLI parameter value that takes precedence

    Returns:
        LogFormat value
    """
    for candidate in (cli_override, os.environ.get(ENV_VAR_NAME)):
        if not candidate:
            continue
        resolved = _normalize(candidate)
        if resolved:
            return resolved

    if any(name in os.environ for name in CI_ENV_VARS):
        return "plain"
    return "console"


def _normalize(value: str) -> LogFormat | None:
    lowered = value.strip().lower()
    if lowered == "json":
        return "json"
    if lowered == "plain":
        return "plain"
    if lowered in ("console", "rich", "auto"):
        return "console"
    return None
