# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/bootstrap/node/pipeline.py

from __future__ import annotations

import time
from typing import Sequence

from rescueboot.observers.events import (
    ActionFailed,
    ActionFinished,
    ActionRecovered,
    ActionStarted,
    TargetFailed,
    TargetSucceeded,
)
from rescueboot.utils.execution import ExecutionContext
from rescueboot.utils.retry import OutcomeKind

from . import actions as registry
from .models import Action, Target, TargetOutcome


def run_target(target: Target, actions: Sequence[Action], ctx: ExecutionContext) -> TargetOutcome:
    """
    Run the host's actions strictly in order.

    The first failing action ends this host's pipeline; the failure is
    logged, emitted and returned, never raised, so sibling hosts keep going.
    """
    report = TargetOutcome(address=target.address, hostname=target.hostname, status="FAILED")
    started = time.perf_counter()

    for index, action in enumerate(actions):
        alog = ctx.log.for_action(action.value)
        actx = ctx.with_log(alog)

        alog.info("%-20s", "START")
        ctx.emit(ActionStarted, host=target.address, action=action.value, index=index)
        t0 = time.perf_counter()
        try:
            outcome = registry.get(action)(target, actx)
        except Exception as e:
            kind = getattr(e, "kind", type(e).__name__)
            attempts = target.retries.retries
            if hasattr(e, "kind"):
                alog.error("%s error after %d retries: %s", kind, attempts, e)
            else:
                alog.exception("Something bad happened unexpectedly: %s => %s", type(e).__name__, e)
            ctx.emit(
                ActionFailed,
                host=target.address,
                action=action.value,
                kind=kind,
                error=str(e),
                attempts=attempts,
            )
            ctx.emit(TargetFailed, host=target.address, action=action.value, kind=kind, error=str(e))
            report.failed_action = action.value
            report.error_kind = kind
            report.error = str(e)
            report.elapsed_s = time.perf_counter() - started
            return report

        elapsed = time.perf_counter() - t0
        target.retries.reset()
        if outcome is not None and outcome.kind is OutcomeKind.RECOVERED:
            alog.info("%s", outcome.message)
            ctx.emit(ActionRecovered, host=target.address, action=action.value, message=outcome.message or "")
        alog.info("FINISHED in %.5f seconds", elapsed)
        ctx.emit(ActionFinished, host=target.address, action=action.value, elapsed_s=elapsed)
        report.completed.append(action.value)

    report.status = "OK"
    report.elapsed_s = time.perf_counter() - started
    ctx.log.info("bootstrap finished in %.1f seconds", report.elapsed_s)
    ctx.emit(TargetSucceeded, host=target.address, elapsed_s=report.elapsed_s)
    return report
