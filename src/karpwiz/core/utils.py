"""Utility functions and decorators."""

import logging.config
import structlog
import yaml
from pathlib import Path
from typing import Optional, Union
from tenacity import retry, stop_after_attempt, wait_exponential


def retry_with_backoff(
    max_retries: int = 3,
    backoff_factor: float = 1.5,
    max_wait: float = 60.0
):
    """Decorator for retry with exponential backoff."""
    return retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=backoff_factor, max=max_wait),
        reraise=True
    )


def setup_logging(
    config_path: Optional[Union[str, Path]] = None,
    log_level: str = "INFO",
    log_format: str = "text",
) -> None:
    """Setup structured logging configuration."""
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
        logging.config.dictConfig(config)
    else:
        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_resource_string(resource_str: str, resource_type: str = "memory") -> float:
    """Parse Kubernetes quantities ('100Mi', '2Gi', '500m') to bytes or millicores."""
    if not resource_str:
        return 0.0

    resource_str = str(resource_str).strip()

    if resource_type.lower() == "cpu":
        if resource_str.endswith('m'):
            return float(resource_str[:-1])
        return float(resource_str) * 1000

    elif resource_type.lower() == "memory":
        # Binary suffixes first so 'Mi' is not read as 'M'
        units = {
            'Ki': 1024,
            'Mi': 1024**2,
            'Gi': 1024**3,
            'Ti': 1024**4,
            'k': 1000,
            'K': 1000,
            'M': 1000**2,
            'G': 1000**3,
            'T': 1000**4
        }

        for unit, multiplier in units.items():
            if resource_str.endswith(unit):
                return float(resource_str[:-len(unit)]) * multiplier

        try:
            return float(resource_str)
        except ValueError:
            return 0.0

    return 0.0


def format_currency(amount: float, currency: str = "USD") -> str:
    """Format an amount the way the dashboard displays it ('$1,234.56')."""
    symbol = "$" if currency == "USD" else f"{currency} "
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_duration(minutes: int) -> str:
    """Format a minute count as '45 minutes' or '2h 30m'."""
    if minutes < 60:
        return f"{minutes} minutes" if minutes != 1 else "1 minute"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours}h"
    return f"{hours}h {rest}m"
