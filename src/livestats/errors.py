"""Error types and helpful suggestions for livestats.

Transport failures never stop the polling loop; they are logged by the
pipeline. These helpers turn them (and configuration problems) into
actionable messages for the command line.
"""

from __future__ import annotations

import re
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

console = Console()


class LiveStatsError(Exception):
    """Base exception with helpful suggestions."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def show(self) -> None:
        """Display the error with suggestion."""
        text = Text()
        text.append("✗ ", style="bold red")
        text.append(self.message, style="red")

        if self.suggestion:
            text.append("\n\n💡 ", style="bold yellow")
            text.append(self.suggestion, style="yellow")

        console.print(Panel(text, border_style="red", title="Error"))


class ConfigurationError(LiveStatsError):
    """Configuration-related errors."""

    pass


class FetchError(LiveStatsError):
    """A stats snapshot could not be fetched or decoded."""

    pass


# status patterns follow httpx wording, e.g. "Server error '503 Service Unavailable'"
ERROR_SUGGESTIONS = {
    r"connection refused|errno 111|all connection attempts failed": {
        "message": "Connection refused",
        "suggestion": "The stats endpoint rejected the connection. Check that:\n• The load test web UI is running\n• The host and port in the stats URL are correct",
    },
    r"name or service not known|getaddrinfo failed|nodename nor servname": {
        "message": "Could not resolve hostname",
        "suggestion": "The host in the stats URL could not be resolved.\nCheck the URL for typos.",
    },
    r"timeout|timed out": {
        "message": "Stats request timed out",
        "suggestion": "The stats endpoint took too long to respond. Try:\n• Increasing request_timeout in the config\n• Increasing the polling interval",
    },
    r"error '404\b|404 not found": {
        "message": "Stats endpoint not found (404)",
        "suggestion": "Point the stats URL at the JSON stats endpoint,\ne.g. http://localhost:8089/stats/requests",
    },
    r"error '40[13]\b|unauthorized|forbidden": {
        "message": "Stats endpoint requires authentication",
        "suggestion": "Pass the required headers in the config file:\n  headers: {Authorization: 'Basic ...'}",
    },
    r"server error '5\d\d\b": {
        "message": "Stats endpoint returned a server error",
        "suggestion": "The load test web UI failed to build the stats payload.\nCheck its logs.",
    },
    r"json|expecting value|decode": {
        "message": "Stats response is not valid JSON",
        "suggestion": "Make sure the URL serves the stats JSON and not the dashboard HTML page.",
    },
    r"no scheme|invalid url|unsupported protocol": {
        "message": "Invalid stats URL",
        "suggestion": "Include the scheme in the URL.\nExample: http://localhost:8089/stats/requests",
    },
}


def analyze_error(error: Exception) -> tuple[str, str | None]:
    """Analyze an error and return enhanced message with suggestion.

    Args:
        error: The exception to analyze

    Returns:
        Tuple of (message, suggestion)
    """
    if isinstance(error, LiveStatsError) and error.suggestion:
        return error.message, error.suggestion

    error_str = str(error).lower()
    full_error = f"{type(error).__name__.lower()}: {error_str}"

    for pattern, info in ERROR_SUGGESTIONS.items():
        if re.search(pattern, full_error):
            return info["message"], info["suggestion"]

    return str(error), None


def show_error(error: Exception, context: str | None = None) -> None:
    """Display an error with helpful suggestion.

    Args:
        error: The exception to display
        context: Optional context about what was happening
    """
    message, suggestion = analyze_error(error)

    text = Text()
    text.append("✗ ", style="bold red")

    if context:
        text.append(f"{context}\n", style="dim")

    text.append(message, style="bold red")

    if suggestion:
        text.append("\n\n💡 ", style="bold yellow")
        text.append(suggestion, style="yellow")

    original = str(error)
    if original and original.lower() != message.lower():
        text.append(f"\n\nOriginal: {original}", style="dim")

    console.print()
    console.print(Panel(text, border_style="red", title="Error"))
    console.print()


def validate_config(config: dict[str, Any]) -> list[str]:
    """Validate a dashboard configuration and return list of issues.

    Args:
        config: Configuration dictionary

    Returns:
        List of validation issues
    """
    issues = []

    stats_url = config.get("stats_url", "")
    if not stats_url:
        issues.append("No stats URL specified")
    elif not stats_url.startswith(("http://", "https://")):
        issues.append(f"Stats URL missing scheme: {stats_url}")

    interval = config.get("refetch_interval", 0)
    if interval <= 0:
        issues.append(f"Invalid refetch interval: {interval}")
    elif interval > 60:
        issues.append(f"Very long refetch interval ({interval}s) - charts will update slowly")

    timeout = config.get("request_timeout", 0)
    if timeout <= 0:
        issues.append(f"Invalid request timeout: {timeout}")

    percentiles = config.get("percentiles_to_chart", [])
    if not percentiles:
        issues.append("No percentiles to chart - response time panel will only show the average")
    for percentile in percentiles:
        if not 0 < percentile <= 1:
            issues.append(f"Percentile out of range (0, 1]: {percentile}")

    return issues


def show_validation_warnings(issues: list[str]) -> None:
    """Display validation warnings."""
    if not issues:
        return

    text = Text()
    text.append("⚠ Configuration Warnings:\n\n", style="bold yellow")

    for issue in issues:
        text.append(f"  • {issue}\n", style="yellow")

    console.print(Panel(text, border_style="yellow", title="Warning"))
