"""Step sequencer: walks an ordered step list against a request dispatcher."""

import asyncio
import inspect
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from seqchat.utils.logger import bind_log_context, get_logger, unbind_log_context

from .history import ConversationHistory, ConversationTurn, Role
from .state import ExecutionState, ExecutionStatus
from .steps import DelayStep, MessageStep, PauseStep, Step, StepStatus, sort_steps

logger = get_logger(__name__)

StateListener = Callable[[ExecutionState], Any]
StepCompleteHook = Callable[[Step, ConversationHistory], Any]


class StepSequencer:
    """
    Explicit state machine over IDLE / RUNNING / PAUSED / COMPLETED / ERROR.

    One run at a time per instance. ``pause()`` and ``cancel()`` are
    synchronous signals meant to be called from another task while ``run()``
    or ``resume()`` is suspended:

    - ``pause()`` is cooperative: an in-flight dispatch finishes and the run
      halts at the next step boundary. A running delay is cut short and will
      be re-run in full on resume.
    - ``cancel()`` aborts the in-flight step; it goes back to READY and is
      re-executed on resume.

    Conversation turns are committed only after the provider replies, so the
    history never holds a user turn without its answer.
    """

    def __init__(
        self,
        dispatcher: Any,
        on_step_complete: Optional[StepCompleteHook] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.dispatcher = dispatcher
        self.on_step_complete = on_step_complete
        self._sleep = sleep

        self._state = ExecutionState()
        self._steps: List[Step] = []
        self._history = ConversationHistory()
        self._listeners: List[StateListener] = []

        self._resume_index = 0
        self._pause_requested = False
        self._task: Optional[asyncio.Task] = None
        self._delay_task: Optional[asyncio.Future] = None
        self.run_id: Optional[str] = None

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def steps(self) -> Tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def history(self) -> ConversationHistory:
        return self._history

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for state snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def run(
        self,
        steps: Sequence[Step],
        history: Optional[ConversationHistory] = None,
        *,
        system_context: Optional[str] = None,
    ) -> ExecutionState:
        """Execute ``steps`` from the first one.

        Starts a fresh run: every step is reset to READY and the previous
        error is cleared. A call while a run is in progress is ignored.
        """
        if self._state.status is ExecutionStatus.RUNNING:
            logger.warning("run() called while a run is in progress; ignoring")
            return self._state
        if history is not None and system_context is not None:
            raise ValueError("Pass either history or system_context, not both")

        self._steps = sort_steps(list(steps))
        for step in self._steps:
            step.reset()
        self._history = (
            history
            if history is not None
            else ConversationHistory(system_context=system_context)
        )
        self._resume_index = 0
        self._pause_requested = False
        self.run_id = uuid.uuid4().hex[:12]

        logger.info(f"Starting run {self.run_id} with {len(self._steps)} steps")
        self._transition(ExecutionState(ExecutionStatus.RUNNING, 0, None))
        return await self._drive(0)

    async def resume(self) -> ExecutionState:
        """Continue a PAUSED or ERROR run; a no-op in any other state."""
        status = self._state.status
        if status not in (ExecutionStatus.PAUSED, ExecutionStatus.ERROR):
            logger.debug(f"resume() ignored in state {status.value}")
            return self._state

        start = self._resume_index
        if status is ExecutionStatus.ERROR and start < len(self._steps):
            self._steps[start].reset()

        self._pause_requested = False
        logger.info(f"Resuming run {self.run_id} at step {start}")
        self._transition(
            self._state.evolve(
                status=ExecutionStatus.RUNNING, current_index=start, last_error=None
            )
        )
        return await self._drive(start)

    def pause(self) -> None:
        """Request a halt at the next step boundary."""
        if self._state.status is not ExecutionStatus.RUNNING:
            logger.debug(f"pause() ignored in state {self._state.status.value}")
            return
        self._pause_requested = True
        logger.info(f"Pause requested for run {self.run_id}")
        if self._delay_task is not None and not self._delay_task.done():
            self._delay_task.cancel()

    def cancel(self) -> bool:
        """Abort the in-flight step. Returns False if nothing is running."""
        if self._task is None or self._task.done():
            return False
        logger.info(f"Cancelling run {self.run_id}")
        self._task.cancel()
        return True

    async def _drive(self, start: int) -> ExecutionState:
        bind_log_context(run_id=self.run_id)
        try:
            task = asyncio.ensure_future(self._execute(start))
            self._task = task
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                # The caller itself was cancelled; take the run down with it
                task.cancel()
                await asyncio.wait({task})
                raise
            finally:
                self._task = None

            if not task.cancelled():
                # Surface unexpected failures from the step loop
                task.result()
            return self._state
        finally:
            unbind_log_context("run_id")

    async def _execute(self, start: int) -> None:
        steps = self._steps
        index = start
        try:
            while index < len(steps):
                if self._pause_requested:
                    logger.info(f"Paused before step {index}")
                    self._halt(ExecutionStatus.PAUSED, index, resume_at=index)
                    return

                step = steps[index]
                self._transition(self._state.evolve(current_index=index))

                if isinstance(step, PauseStep):
                    step.mark_completed()
                    if step.is_paused:
                        logger.info(f"Paused at pause step {index} ({step.id})")
                        self._halt(ExecutionStatus.PAUSED, index, resume_at=index + 1)
                        return
                elif isinstance(step, DelayStep):
                    if not await self._run_delay(step):
                        step.reset()
                        logger.info(f"Delay step {index} interrupted by pause")
                        self._halt(ExecutionStatus.PAUSED, index, resume_at=index)
                        return
                elif isinstance(step, MessageStep):
                    error = await self._run_message(step)
                    if error is not None:
                        logger.error(
                            f"Step {index} ({step.id}) failed: "
                            f"{getattr(error, 'message', None) or error}"
                        )
                        self._halt(
                            ExecutionStatus.ERROR, index, resume_at=index, error=error
                        )
                        return
                else:
                    raise TypeError(f"Unsupported step type: {type(step).__name__}")

                index += 1
                await self._step_completed(step)

            logger.info(f"Run {self.run_id} completed")
            self._transition(
                self._state.evolve(
                    status=ExecutionStatus.COMPLETED,
                    current_index=max(len(steps) - 1, 0),
                )
            )
        except asyncio.CancelledError:
            if index < len(steps) and steps[index].status is not StepStatus.COMPLETE:
                steps[index].reset()
            logger.info(f"Run {self.run_id} cancelled at step {index}")
            self._halt(ExecutionStatus.PAUSED, index, resume_at=index)
            raise
        except Exception as e:
            logger.error(f"Run {self.run_id} aborted at step {index}: {e}")
            self._halt(ExecutionStatus.ERROR, index, resume_at=index, error=e)
            raise

    async def _run_message(self, step: MessageStep) -> Optional[Exception]:
        """Dispatch one exchange; returns the failure instead of raising it."""
        step.mark_sent()
        self._notify()

        user_turn = ConversationTurn(Role.USER, step.text)
        try:
            reply = await self.dispatcher.send(self._history.extended(user_turn))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            step.error = e
            step.mark_error()
            return e

        self._history.append(user_turn)
        self._history.append(reply)
        step.response = reply.content
        step.mark_completed()
        return None

    async def _run_delay(self, step: DelayStep) -> bool:
        """Sleep for the step's duration; False if ``pause()`` cut it short."""
        step.mark_sent()
        self._notify()

        delay_task = asyncio.ensure_future(self._sleep(step.duration_seconds))
        self._delay_task = delay_task
        try:
            await asyncio.wait({delay_task})
        finally:
            self._delay_task = None
            if not delay_task.done():
                delay_task.cancel()

        if delay_task.cancelled():
            return False
        delay_task.result()
        step.mark_completed()
        return True

    async def _step_completed(self, step: Step) -> None:
        self._notify()
        if self.on_step_complete is None:
            return
        try:
            result = self.on_step_complete(step, self._history)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"on_step_complete hook failed for step {step.id}: {e}")

    def _halt(
        self,
        status: ExecutionStatus,
        index: int,
        resume_at: int,
        error: Optional[Exception] = None,
    ) -> None:
        self._pause_requested = False
        self._resume_index = resume_at
        self._transition(
            self._state.evolve(status=status, current_index=index, last_error=error)
        )

    def _transition(self, new_state: ExecutionState) -> None:
        self._state = new_state
        self._notify()

    def _notify(self) -> None:
        snapshot = self._state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"State listener {listener!r} failed: {e}")
