"""Damage distributions for tabletop attack sequences, exact and simulated."""

from __future__ import annotations

from .api import (
    DamageComputationResult,
    ExactModel,
    build_setup,
    compute_damage_distribution,
    compute_exact_distribution,
    exact_model_for_setup,
)
from .attack import AttackExpressions, AttackResolution, resolve_attack
from .compiler import ExpressionCompiler
from .data import (
    ADVANTAGE_MODES,
    DEFAULT_ITERATIONS,
    DEFAULT_SEED,
    DEFAULT_SETUP_VALUES,
    PREFERENCES_JSON_PATH,
    VARIABLE_DELIMITER,
)
from .dice import CompiledExpression, CriticalClass, RollResult, evaluate, parse
from .errors import ComputationError, ExpressionError, UnboundVariableError
from .exact import ExactDamageEngine
from .histogram import Histogram
from .models import (
    AdvantageMode,
    AttackOutcome,
    AttackSetup,
    AttackState,
    Bucket,
    CritRules,
    DamageSummary,
    TrialResult,
)
from .preferences import PreferenceStore, load_preferences, save_preferences
from .protocol import (
    ErrorResponse,
    SimulationRequest,
    SimulationResponse,
    decode_response,
    handle_request,
)
from .simulation import SimulationEngine, prepare_setup, simulate_many, simulate_trial
from .variables import Variable, VariableResolver, split_variables
from .worker import ComputationWorker, DamageClient, WorkerHost

__all__ = [
    "ADVANTAGE_MODES",
    "DEFAULT_ITERATIONS",
    "DEFAULT_SEED",
    "DEFAULT_SETUP_VALUES",
    "PREFERENCES_JSON_PATH",
    "VARIABLE_DELIMITER",
    "AdvantageMode",
    "AttackExpressions",
    "AttackOutcome",
    "AttackResolution",
    "AttackSetup",
    "AttackState",
    "Bucket",
    "CompiledExpression",
    "ComputationError",
    "ComputationWorker",
    "CritRules",
    "CriticalClass",
    "DamageClient",
    "DamageComputationResult",
    "DamageSummary",
    "ErrorResponse",
    "ExactDamageEngine",
    "ExactModel",
    "ExpressionCompiler",
    "ExpressionError",
    "Histogram",
    "PreferenceStore",
    "RollResult",
    "SimulationEngine",
    "SimulationRequest",
    "SimulationResponse",
    "TrialResult",
    "UnboundVariableError",
    "Variable",
    "VariableResolver",
    "WorkerHost",
    "build_setup",
    "compute_damage_distribution",
    "compute_exact_distribution",
    "decode_response",
    "evaluate",
    "exact_model_for_setup",
    "handle_request",
    "load_preferences",
    "parse",
    "prepare_setup",
    "resolve_attack",
    "save_preferences",
    "simulate_many",
    "simulate_trial",
    "split_variables",
]
