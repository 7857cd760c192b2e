"""Request/response messages exchanged with a computation thread.

Messages are plain mappings so they can cross any transport unchanged::

    request  = {"nonce": 3, "itersRequested": 10000, "setup": {...}}
    response = {"nonce": 3, "numTrials": 10000, "numHit": 6512, "numAttacks": 10000,
                "buckets": [[0, {"damageObservations": 3488, "costTotal": 0.0, "atks": 3488}], ...]}
    failure  = {"nonce": 3, "error": "Cannot parse dice expression ..."}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .histogram import Histogram
from .models import AttackSetup, Bucket
from .simulation import SimulationEngine


@dataclass(frozen=True)
class SimulationRequest:
    nonce: int
    iters_requested: int
    setup: AttackSetup

    def to_message(self) -> dict[str, Any]:
        return {
            "nonce": self.nonce,
            "itersRequested": self.iters_requested,
            "setup": self.setup.to_message(),
        }

    @classmethod
    def from_message(cls, payload: Mapping[str, Any]) -> SimulationRequest:
        """Decode a request mapping.

        Raises
        ------
        ValueError
            If a field is missing or the trial count is negative.
        """

        try:
            nonce = int(payload["nonce"])
            iterations = int(payload["itersRequested"])
            setup_payload = payload["setup"]
        except KeyError as exc:
            raise ValueError(f"Request is missing required field {exc.args[0]!r}") from exc
        if iterations < 0:
            raise ValueError(f"itersRequested must be non-negative, received {iterations}")
        if isinstance(setup_payload, AttackSetup):
            setup = setup_payload
        else:
            setup = AttackSetup.from_message(setup_payload)
        return cls(nonce=nonce, iters_requested=iterations, setup=setup)


@dataclass(frozen=True)
class SimulationResponse:
    nonce: int
    num_trials: int
    num_hit: int
    num_attacks: int
    buckets: list[tuple[int, Bucket]] = field(default_factory=list)

    @classmethod
    def from_histogram(cls, nonce: int, histogram: Histogram) -> SimulationResponse:
        return cls(
            nonce=nonce,
            num_trials=histogram.num_trials,
            num_hit=histogram.num_hit,
            num_attacks=histogram.num_attacks,
            buckets=[(damage, bucket) for damage, bucket in histogram],
        )

    def to_histogram(self) -> Histogram:
        histogram = Histogram()
        for damage, bucket in self.buckets:
            histogram.buckets[damage] = Bucket(
                count=bucket.count,
                cost_total=bucket.cost_total,
                attack_count_total=bucket.attack_count_total,
            )
        histogram.num_trials = self.num_trials
        histogram.num_hit = self.num_hit
        histogram.num_attacks = self.num_attacks
        return histogram

    def to_message(self) -> dict[str, Any]:
        return {
            "nonce": self.nonce,
            "numTrials": self.num_trials,
            "numHit": self.num_hit,
            "numAttacks": self.num_attacks,
            "buckets": [
                [
                    damage,
                    {
                        "damageObservations": bucket.count,
                        "costTotal": bucket.cost_total,
                        "atks": bucket.attack_count_total,
                    },
                ]
                for damage, bucket in self.buckets
            ],
        }

    @classmethod
    def from_message(cls, payload: Mapping[str, Any]) -> SimulationResponse:
        buckets = [
            (
                int(damage),
                Bucket(
                    count=int(values["damageObservations"]),
                    cost_total=float(values["costTotal"]),
                    attack_count_total=int(values["atks"]),
                ),
            )
            for damage, values in payload.get("buckets", [])
        ]
        return cls(
            nonce=int(payload["nonce"]),
            num_trials=int(payload["numTrials"]),
            num_hit=int(payload["numHit"]),
            num_attacks=int(payload["numAttacks"]),
            buckets=buckets,
        )


@dataclass(frozen=True)
class ErrorResponse:
    nonce: Optional[int]
    error: str

    def to_message(self) -> dict[str, Any]:
        return {"nonce": self.nonce, "error": self.error}


Response = Union[SimulationResponse, ErrorResponse]


def decode_response(payload: Mapping[str, Any]) -> Response:
    """Return the typed response carried by ``payload``."""

    if "error" in payload:
        nonce = payload.get("nonce")
        return ErrorResponse(nonce=None if nonce is None else int(nonce), error=str(payload["error"]))
    return SimulationResponse.from_message(payload)


def handle_request(payload: Mapping[str, Any], engine: SimulationEngine) -> dict[str, Any]:
    """Run one request to completion and return the response mapping.

    Failures propagate; the whole request fails and no partial histogram is
    produced.
    """

    request = SimulationRequest.from_message(payload)
    histogram = engine.simulate(request.setup, request.iters_requested)
    return SimulationResponse.from_histogram(request.nonce, histogram).to_message()
