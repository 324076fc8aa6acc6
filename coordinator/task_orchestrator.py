"""
ShardVault Task Orchestrator

Submits re-encryption tasks to the task ledger and polls them to completion.
"""

from typing import Optional
import structlog

from shared.errors import TaskTimeoutError
from shared.models import TaskInput, TaskRequest, TaskResult, TaskState
from shared.protocol import parse_payload
from shared.wallet import WalletSigner
from .config import VaultConfig
from .scheduler import Clock, SystemClock
from .services import TaskLedger

logger = structlog.get_logger()


class CompletionPoller:
    """
    Polling state machine for one task.

    SUBMITTED -> POLLING -> COMPLETED | TIMED_OUT

    Each tick measures the elapsed time, then reads the ledger. A record
    with an id completes the task; otherwise the task times out once the
    elapsed time exceeds the deadline, or the poller waits one interval and
    ticks again. Ledger errors and undecodable records propagate as-is.
    """

    def __init__(
        self,
        ledger: TaskLedger,
        task_id: str,
        timeout: float,
        poll_interval: float,
        clock: Clock
    ):
        self.ledger = ledger
        self.task_id = task_id
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.clock = clock
        self.state = TaskState.SUBMITTED
        self.ticks = 0

    async def run(self) -> TaskResult:
        """Poll until the task completes or the deadline passes."""
        if self.state != TaskState.SUBMITTED:
            raise RuntimeError(f"Poller for task {self.task_id} already ran")

        start = self.clock.now()
        self.state = TaskState.POLLING

        while True:
            elapsed = self.clock.now() - start
            self.ticks += 1
            record = await self.ledger.get_completed_by_id(self.task_id)

            if record and record.get("id"):
                result = parse_payload(record, TaskResult, source="task result")
                self.state = TaskState.COMPLETED
                logger.info(
                    "task_completed",
                    task_id=self.task_id,
                    ticks=self.ticks,
                    elapsed=round(elapsed, 3),
                    verification_failed=bool(result.verification_error)
                )
                return result

            if elapsed > self.timeout:
                self.state = TaskState.TIMED_OUT
                logger.warning(
                    "task_timed_out",
                    task_id=self.task_id,
                    ticks=self.ticks,
                    timeout=self.timeout
                )
                raise TaskTimeoutError(self.task_id, self.timeout)

            logger.debug("task_pending", task_id=self.task_id, tick=self.ticks)
            await self.clock.sleep(self.poll_interval)


class TaskOrchestrator:
    """
    Submits a computation task and waits for the participant nodes to finish.

    Resource ceilings, task type and participant list come from the
    configuration; the input payload merges the threshold parameters with
    the data id and the consumer's public key.
    """

    def __init__(
        self,
        config: VaultConfig,
        ledger: TaskLedger,
        clock: Optional[Clock] = None
    ):
        self.config = config
        self.ledger = ledger
        self.clock = clock or SystemClock()

    def build_request(self, data_id: str, consumer_public_key: str) -> TaskRequest:
        """Build the immutable request for a consumer's task."""
        threshold = self.config.threshold
        return TaskRequest(
            task_type=self.config.task_type,
            data_id=data_id,
            input_payload=TaskInput(
                t=threshold.t,
                n=threshold.n,
                data_id=data_id,
                consumer_pk=consumer_public_key
            ),
            compute_limit=self.config.compute_limit,
            memory_limit=self.config.memory_limit,
            participant_nodes=list(self.config.node_names)
        )

    async def submit(
        self,
        data_id: str,
        consumer_public_key: str,
        signer: Optional[WalletSigner] = None
    ) -> str:
        """
        Submit a re-encryption task.

        Args:
            data_id: Published data id
            consumer_public_key: The consumer's public key (base64)
            signer: Wallet signer for the ledger write

        Returns:
            The ledger's task id
        """
        request = self.build_request(data_id, consumer_public_key)
        task_id = await self.ledger.submit(request, signer=signer)
        logger.info(
            "task_submitted",
            task_id=task_id,
            data_id=data_id,
            task_type=request.task_type,
            nodes=request.participant_nodes
        )
        return task_id

    async def await_completion(self, task_id: str, timeout: Optional[float] = None) -> TaskResult:
        """
        Wait for a submitted task to complete.

        Args:
            task_id: Task id returned by submit()
            timeout: Seconds to wait (configured default if None)

        Returns:
            The completed TaskResult

        Raises:
            TaskTimeoutError: If the task is still pending after the timeout
        """
        poller = CompletionPoller(
            ledger=self.ledger,
            task_id=task_id,
            timeout=self.config.default_timeout if timeout is None else timeout,
            poll_interval=self.config.poll_interval,
            clock=self.clock
        )
        return await poller.run()

    async def submit_and_await(
        self,
        data_id: str,
        consumer_public_key: str,
        timeout: Optional[float] = None,
        signer: Optional[WalletSigner] = None
    ) -> TaskResult:
        """Submit a task and wait for its result."""
        task_id = await self.submit(data_id, consumer_public_key, signer=signer)
        return await self.await_completion(task_id, timeout=timeout)
