"""
chaosctl Rule Evaluation
========================
Client-side model of how the engine treats a single request path under a
given configuration. Used to preview ("explain") a configuration before
pushing it; the engine remains the authority at runtime.

Order of evaluation, matching the engine:
  1. Status-injection rules, in list order; the first rule whose path
     prefix matches and whose error-rate roll fires wins.
  2. Active mock rules, in list order; the first prefix match wins.
  3. Chaos routes: latency, throttling, failure mode and header tampering
     only apply to paths under one of the chaos route prefixes.
"""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, Optional, Sequence, Union

from chaosctl.core.model import (
    FailureMode,
    MockRule,
    ProxyConfiguration,
    ProxyMode,
    StatusRule,
    clamp_percent,
    non_negative,
    parse_routes,
)

TAMPER_MOCK = "MOCK"
TAMPER_HEADERS = "HEADER HAX"
TAMPER_LAG_AND_HEADERS = "LAG + HEADERS"


def is_chaos_route(routes: Union[str, Iterable[str]], path: str) -> bool:
    return any(path.startswith(route) for route in parse_routes(routes))


def match_status_rule(
    rules: Sequence[StatusRule],
    path: str,
    roll: Optional[float] = None,
) -> Optional[StatusRule]:
    """First status rule that matches ``path`` and fires.

    Args:
        rules: Rules in evaluation order.
        path: Request path.
        roll: Random draw in [0, 100). ``None`` returns the first rule that
            *can* fire (error rate above zero).
    """
    for rule in rules:
        if not path.startswith(rule.path_pattern):
            continue
        rate = clamp_percent(rule.error_rate)
        if rate <= 0:
            continue
        if roll is None or roll < rate:
            return rule
    return None


def match_mock_rule(rules: Sequence[MockRule], path: str) -> Optional[MockRule]:
    for rule in rules:
        if rule.active and path.startswith(rule.path_pattern):
            return rule
    return None


def route_target(config: ProxyConfiguration, path: str, routes: Union[str, Iterable[str], None] = None) -> str:
    """Origin the engine forwards ``path`` to in the active mode."""
    if ProxyMode.from_str(config.mode) == ProxyMode.UNIFIED:
        return config.target_unified
    if is_chaos_route(config.chaos_routes if routes is None else routes, path):
        return config.target_backend
    return config.target_frontend


def traffic_tamper_type(config: ProxyConfiguration) -> str:
    """Label the engine logs for a proxied (not injected) chaos request."""
    failure = FailureMode.from_str(config.failure_mode)
    if failure != FailureMode.NORMAL:
        return failure.value

    label = ""
    headers = config.header_rules.any_enabled
    if headers:
        label = TAMPER_HEADERS
    lag = non_negative(config.request_delay_ms) + non_negative(config.response_delay_ms)
    if lag > 0:
        label = TAMPER_LAG_AND_HEADERS if headers else f"LAG +{lag}ms"
    return label


def describe_tampering(
    config: ProxyConfiguration,
    path: str,
    routes: Union[str, Iterable[str], None] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Predict what the engine does with a request for ``path``.

    Without ``rng`` the prediction is the worst case: any status rule that
    can fire is reported as firing. With ``rng`` a single roll is drawn,
    the way the engine decides per request.
    """
    routes = config.chaos_routes if routes is None else routes
    roll = rng.random() * 100 if rng is not None else None
    chaos = is_chaos_route(routes, path)
    result: Dict[str, Any] = {
        "path": path,
        "target": route_target(config, path, routes),
        "chaos_route": chaos,
        "status_rule": None,
        "mock_rule": None,
        "probability": 0,
        "tampered": False,
        "tamper_type": "",
    }

    status_rule = match_status_rule(config.status_rules, path, roll)
    if status_rule is not None:
        result.update(
            status_rule=status_rule.id,
            status_code=status_rule.status_code,
            probability=clamp_percent(status_rule.error_rate),
            tampered=True,
            tamper_type=f"INJECT {status_rule.status_code}",
        )
        return result

    mock_rule = match_mock_rule(config.mock_rules, path)
    if mock_rule is not None:
        result.update(mock_rule=mock_rule.id, probability=100, tampered=True, tamper_type=TAMPER_MOCK)
        return result

    if chaos:
        label = traffic_tamper_type(config)
        if label:
            result.update(probability=100, tampered=True, tamper_type=label)
    return result
