"""Gateway health checks: ping each configured provider before a session starts."""

import asyncio
import logging

from socratic.providers.base import CompletionGateway, GatewayError

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, gateway: CompletionGateway) -> tuple[str, bool, str]:
    """Ping a single gateway. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(gateway.complete(_PING_PROMPT, ""), timeout=_TIMEOUT_SEC)
        return name, True, ""
    except GatewayError as exc:
        return name, False, str(exc)
    except TimeoutError:
        return name, False, f"No reply within {_TIMEOUT_SEC:.0f}s"


async def run_health_checks(
    gateways: dict[str, CompletionGateway],
) -> dict[str, tuple[bool, str]]:
    """Ping all gateways in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, g) for n, g in gateways.items()))
    for name, ok, err in results:
        if not ok:
            logger.warning("Health check failed for %s: %s", name, err)
    return {name: (ok, err) for name, ok, err in results}
