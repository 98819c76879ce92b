"""Prometheus Metrics for RewardRounds.

Provides ``SettlementMetrics`` - a facade exposing registration, funding,
claim and round metrics for Prometheus scraping.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge
from prometheus_client import start_http_server as _start_http_server

from rewardrounds.config import EngineConfig


class SettlementMetrics:
    """Prometheus exporter for a settlement engine.

    Metrics exposed:

    * ``registrations_total`` - counter of participant registrations
    * ``deposits_total`` / ``deposited_amount_total`` - inbound funding
    * ``claims_total`` - counter of claim calls, labelled by ``result``
    * ``paid_amount_total`` - funds paid to participants
    * ``withdrawn_amount_total`` - funds removed by emergency withdrawal
    * ``current_round`` - gauge of the current round id
    * ``held_balance`` - gauge of funds held by the treasury

    Args:
        prefix: Metric name prefix. Defaults to ``rewardrounds``.
        registry: Collector registry to register with. A private registry
            is created when omitted so several engines can coexist.
    """

    def __init__(
        self,
        prefix: str = "rewardrounds",
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.registrations_total = Counter(
            f"{prefix}_registrations_total",
            "Total participant registrations",
            registry=self.registry,
        )
        self.deposits_total = Counter(
            f"{prefix}_deposits_total",
            "Total inbound deposits",
            registry=self.registry,
        )
        self.deposited_amount_total = Counter(
            f"{prefix}_deposited_amount_total",
            "Total amount deposited",
            registry=self.registry,
        )
        self.claims_total = Counter(
            f"{prefix}_claims_total",
            "Total claim attempts",
            ["result"],
            registry=self.registry,
        )
        self.paid_amount_total = Counter(
            f"{prefix}_paid_amount_total",
            "Total amount paid to participants",
            registry=self.registry,
        )
        self.withdrawn_amount_total = Counter(
            f"{prefix}_withdrawn_amount_total",
            "Total amount removed by emergency withdrawal",
            registry=self.registry,
        )
        self.current_round = Gauge(
            f"{prefix}_current_round",
            "Current round id",
            registry=self.registry,
        )
        self.held_balance = Gauge(
            f"{prefix}_held_balance",
            "Funds currently held",
            registry=self.registry,
        )

    @classmethod
    def from_config(
        cls, config: EngineConfig, registry: Optional[CollectorRegistry] = None
    ) -> "SettlementMetrics":
        """Build metrics named with the configured ``metrics_prefix``."""
        return cls(prefix=config.metrics_prefix, registry=registry)

    def record_registration(self) -> None:
        self.registrations_total.inc()

    def record_deposit(self, amount: int, held_balance: int) -> None:
        self.deposits_total.inc()
        self.deposited_amount_total.inc(amount)
        self.held_balance.set(held_balance)

    def record_claim(self, result: str, amount: int = 0, held_balance: Optional[int] = None) -> None:
        """Count a claim attempt.

        Args:
            result: Outcome label, e.g. ``paid``, ``nothing`` or ``failed``.
            amount: Amount paid, if any.
            held_balance: Balance after the payout, if it changed.
        """
        self.claims_total.labels(result=result).inc()
        if amount:
            self.paid_amount_total.inc(amount)
        if held_balance is not None:
            self.held_balance.set(held_balance)

    def record_withdrawal(self, amount: int, held_balance: int) -> None:
        self.withdrawn_amount_total.inc(amount)
        self.held_balance.set(held_balance)

    def set_round(self, round_id: int) -> None:
        self.current_round.set(round_id)


def start_metrics_server(port: int, metrics: SettlementMetrics) -> None:
    """Start the Prometheus HTTP metrics server for *metrics*.

    Args:
        port: TCP port to listen on.
        metrics: Metrics whose registry is served.
    """
    _start_http_server(port, registry=metrics.registry)
