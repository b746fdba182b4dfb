"""
Subdomain Provisioning Orchestrator - One Terminal Outcome per Request

This module fans a call plan out to Cloudflare and reduces the individually
asynchronous results into exactly one success or failure.

Architecture:
- Every call in the plan is dispatched as its own asyncio task
- A per-run BatchState counts completions and latches the first failure
- First failure wins: later completions are discarded, never reported
- Calls still in flight after a failure finish in the background
  (or are cancelled when cancel_on_failure is set)
"""

import logging
import asyncio
from typing import List, Optional, Set

from service_config import ServiceConfig
from services.call_plan import build_call_plan
from services.cloudflare import CloudflareService
from services.provisioning_models import (
    BatchState, CallOutcome, CallSpec, ErrorCode, ProvisioningFailure,
    TerminalOutcome, ERROR_KIND_INTERNAL
)
from services.result_reducer import ResultReducer
from localization import bilingual, t

logger = logging.getLogger(__name__)

# ====================================================================
# FAN-OUT COORDINATOR
# ====================================================================

def _internal_failure() -> TerminalOutcome:
    return TerminalOutcome.failed(ProvisioningFailure(
        http_status=500,
        error_code=ErrorCode.INTERNAL,
        dev_message=t('errors.internal'),
        user_message=bilingual('errors.internal')
    ))


class FanOutCoordinator:
    """
    Dispatches a call plan concurrently and arbitrates the terminal outcome.

    Guarantees for each run():
    1. Every CallSpec is attempted exactly once, no retries
    2. Success only when every dispatched call completed and nothing failed
    3. The first failing call decides the failure; the reducer (and so the
       translator) runs for that call only
    4. No exception escapes a run
    """

    def __init__(self, client, reducer: ResultReducer, cancel_on_failure: bool = False,
                 background_tasks: Optional[Set[asyncio.Task]] = None):
        self.client = client
        self.reducer = reducer
        self.cancel_on_failure = cancel_on_failure
        self.background_tasks = background_tasks if background_tasks is not None else set()

    async def run(self, calls: List[CallSpec]) -> TerminalOutcome:
        state = BatchState(total_dispatched=len(calls))
        if not calls:
            state.terminal_emitted = True
            return TerminalOutcome.succeeded()

        logger.info(f"🚀 Dispatching {len(calls)} Cloudflare calls")
        pending: Set[asyncio.Task] = {
            asyncio.create_task(self._dispatch(call), name=f"cloudflare:{call.label}")
            for call in calls
        }

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                terminal = None
                for task in done:
                    result = await self._on_completion(state, task.result())
                    if result is not None:
                        terminal = result
                if terminal is not None:
                    self._detach(pending)
                    return terminal
        except asyncio.CancelledError:
            self._detach(pending)
            raise
        except Exception as e:
            logger.exception(f"❌ Unexpected error while coordinating Cloudflare calls: {e}")
            self._detach(pending)
            state.terminal_emitted = True
            return _internal_failure()

        # Unreachable while the counters are consistent
        logger.error(f"❌ Batch ended without a terminal outcome: {state}")
        return _internal_failure()

    async def _dispatch(self, call: CallSpec) -> CallOutcome:
        try:
            return await self.client.send(call)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"❌ Unexpected error sending {call.label}: {e}")
            return CallOutcome(call=call, error_kind=ERROR_KIND_INTERNAL, error=str(e))

    async def _on_completion(self, state: BatchState, outcome: CallOutcome) -> Optional[TerminalOutcome]:
        """Apply one completion to the batch state, returning the terminal outcome when decided"""
        if state.failed or state.terminal_emitted:
            logger.debug(f"🗑️ Discarding {outcome.call.label} outcome, batch already decided")
            return None

        if not outcome.succeeded and not outcome.call.required:
            logger.warning(f"⚠️ Optional call {outcome.call.label} failed, continuing")
        elif not outcome.succeeded:
            if not state.latch_failure():
                return None
            failure = await self.reducer.reduce(outcome)
            state.terminal_emitted = True
            if failure is None:
                logger.error(f"❌ Reducer produced no failure for failed call {outcome.call.label}")
                return _internal_failure()
            logger.warning(f"🛑 Batch failed on {outcome.call.label}: {failure.error_code}")
            return TerminalOutcome.failed(failure)

        state.total_completed += 1
        if state.all_completed:
            state.terminal_emitted = True
            logger.info(f"✅ All {state.total_dispatched} Cloudflare calls completed")
            return TerminalOutcome.succeeded()
        return None

    def _detach(self, pending: Set[asyncio.Task]) -> None:
        """Leave in-flight calls to finish (or cancel them) and discard their results"""
        for task in pending:
            if self.cancel_on_failure:
                task.cancel()
            self.background_tasks.add(task)
            task.add_done_callback(self._discard)
        if pending:
            action = 'Cancelling' if self.cancel_on_failure else 'Ignoring'
            logger.info(f"🔕 {action} {len(pending)} in-flight Cloudflare call(s)")

    def _discard(self, task: asyncio.Task) -> None:
        self.background_tasks.discard(task)
        if task.cancelled():
            logger.debug(f"🗑️ {task.get_name()} cancelled after batch was decided")
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"⚠️ {task.get_name()} raised after batch was decided: {exc!r}")
            return
        outcome = task.result()
        if outcome.succeeded:
            # The record or rule now exists even though the request was reported as failed
            logger.warning(f"⚠️ {task.get_name()} succeeded after batch failure, result discarded")
        else:
            logger.debug(f"🗑️ {task.get_name()} failed after batch was decided, result discarded")


# ====================================================================
# PROVISIONING ORCHESTRATOR - ENTRY POINT PER REQUEST
# ====================================================================

class ProvisioningOrchestrator:
    """
    Long-lived entry point: one provisioning run per validated request.

    Each run gets its own Cloudflare client (the request carries the
    credentials) and its own coordinator and batch state. Only the set of
    orphaned in-flight tasks is shared, so shutdown can wait for them.
    """

    def __init__(self, config: ServiceConfig, translator=None):
        self.config = config
        self.reducer = ResultReducer(translator)
        self._background_tasks: Set[asyncio.Task] = set()

    async def provision(self, request) -> TerminalOutcome:
        """
        Provision `subdomain.domain` for a validated ProvisioningRequest

        Returns:
            The single TerminalOutcome for this request
        """
        full_domain = request.full_domain
        logger.info(f"🎯 ORCHESTRATOR: Provisioning {full_domain} (redirect: {request.domain_redirect})")

        try:
            calls = build_call_plan(
                request,
                ingress_address=self.config.ingress_address,
                redirect_target=self.config.redirect_target
            )
            client = CloudflareService(
                email=request.credentials.email,
                api_key=request.credentials.api_key,
                base_url=self.config.cloudflare_api_base,
                timeout=self.config.cloudflare_timeout
            )
            coordinator = FanOutCoordinator(
                client,
                self.reducer,
                cancel_on_failure=self.config.cancel_on_failure,
                background_tasks=self._background_tasks
            )
            outcome = await coordinator.run(calls)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"❌ ORCHESTRATOR: Unexpected error provisioning {full_domain}: {e}")
            return _internal_failure()

        if outcome.success:
            logger.info(f"✅ ORCHESTRATOR: {full_domain} provisioned")
        else:
            logger.warning(f"❌ ORCHESTRATOR: {full_domain} failed with {outcome.failure.error_code}")
        return outcome

    @property
    def in_flight(self) -> int:
        return len(self._background_tasks)

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for calls left running after failed batches"""
        if not self._background_tasks:
            return
        logger.info(f"⏳ Waiting for {len(self._background_tasks)} orphaned Cloudflare call(s)")
        done, pending = await asyncio.wait(set(self._background_tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"⚠️ Cancelled {len(pending)} Cloudflare call(s) still running at shutdown")
