"""storyloom.execution: bounded remote invocation for slow upstream APIs.

ARCHITECTURE
────────────
::

    InvocationRequest (what to call)
      │
      ▼
    UpstreamGateway.submit
      ├── AdmissionController ─ FIFO slots, max_concurrent in flight
      └── ResilientInvoker    ─ per-attempt deadline + retry loop
            ├── run_with_deadline ─ cancels/abandons late attempts
            └── RetryPolicy       ─ linear backoff + jitter, bounded attempts
      │
      ▼
    InvocationResult | InvocationFailed

MODULE MAP (recommended reading order)
──────────────────────────────────────
  1. models.py     ─ InvocationRequest, AttemptOutcome, InvocationFailed
  2. retry.py      ─ RetryPolicy, Retry, GiveUp
  3. timeout.py    ─ run_with_deadline, TimeoutExpired, in_thread
  4. invoker.py    ─ ResilientInvoker, classify_exception
  5. admission.py  ─ AdmissionController
  6. settings.py   ─ ResilienceSettings (env-driven)
  7. gateway.py    ─ UpstreamGateway
"""

from storyloom.execution.admission import AdmissionController
from storyloom.execution.gateway import UpstreamGateway
from storyloom.execution.invoker import ResilientInvoker, classify_exception
from storyloom.execution.models import (
    AttemptOutcome,
    Failure,
    FailureKind,
    InvalidTransition,
    InvocationFailed,
    InvocationRequest,
    InvocationResult,
    InvocationState,
    RetryState,
    Success,
)
from storyloom.execution.retry import GiveUp, Retry, RetryDecision, RetryPolicy
from storyloom.execution.settings import ResilienceSettings
from storyloom.execution.timeout import TimeoutExpired, in_thread, run_with_deadline

__all__ = [
    "AdmissionController",
    "AttemptOutcome",
    "Failure",
    "FailureKind",
    "GiveUp",
    "InvalidTransition",
    "InvocationFailed",
    "InvocationRequest",
    "InvocationResult",
    "InvocationState",
    "ResilienceSettings",
    "ResilientInvoker",
    "Retry",
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "Success",
    "TimeoutExpired",
    "UpstreamGateway",
    "classify_exception",
    "in_thread",
    "run_with_deadline",
]
