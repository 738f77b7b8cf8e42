"""Agent loop for CodeGenius.

One ``AgentLoop`` owns one conversation. A run streams the model's reply,
hands the finished text to a ``TurnHandler`` and keeps submitting the
handler's follow-up messages until a turn produces none.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol

from codegenius.cancellation import CancellationToken
from codegenius.config import Config, get_config
from codegenius.exceptions import LLMError, RunCancelledError
from codegenius.instructions import InstructionLoader, build_system_prompt
from codegenius.llm import LLMProvider, Message, create_provider, get_provider
from codegenius.logging import get_logger
from codegenius.operations import (
    Command,
    FileOperationExecutor,
    OperationResult,
    has_commands,
    parse_commands,
    serialize_results,
)

log = get_logger(__name__)

TokenCallback = Callable[[str], None]
SystemMessageCallback = Callable[[str], None]


class RunState(str, Enum):
    """Lifecycle of the loop's single active run."""

    IDLE = "idle"
    STREAMING = "streaming"
    PAUSED = "paused"
    ABORTED = "aborted"


@dataclass
class TurnDecision:
    """What to do after a completed turn; no follow-up ends the run."""

    follow_up: str | None = None
    results: list[OperationResult] = field(default_factory=list)

    @property
    def should_continue(self) -> bool:
        return self.follow_up is not None


class TurnHandler(Protocol):
    """Domain-specific turn handling injected into the loop."""

    def reset(self) -> None:
        ...

    def on_token(self, text: str, notify: SystemMessageCallback) -> None:
        ...

    async def on_turn_complete(
        self,
        text: str,
        cancellation: CancellationToken,
        notify: SystemMessageCallback,
    ) -> TurnDecision:
        ...


def _describe(command: Command) -> str:
    target = command.path or command.attributes.get("filter") or command.attributes.get("reason") or ""
    return f"{command.name} -> {target}" if target else command.name


class FileOperationTurnHandler:
    """Detect file-operation commands in replies and execute them."""

    def __init__(self, executor: FileOperationExecutor):
        self.executor = executor
        self._buffer = ""
        self.pending: list[Command] = []
        self._pending_keys: set[tuple[str, str | None]] = set()

    def reset(self) -> None:
        """Forget the in-flight reply and its pending operations."""
        self._buffer = ""
        self.pending = []
        self._pending_keys = set()

    def on_token(self, text: str, notify: SystemMessageCallback) -> None:
        """Scan the growing reply for newly completed commands."""
        self._buffer += text
        if not has_commands(self._buffer):
            return
        for command in parse_commands(self._buffer, partial=True):
            key = command.key()
            if key in self._pending_keys:
                continue
            self._pending_keys.add(key)
            self.pending.append(command)
            notify(f"Queued {_describe(command)}")

    async def on_turn_complete(
        self,
        text: str,
        cancellation: CancellationToken,
        notify: SystemMessageCallback,
    ) -> TurnDecision:
        """Execute the reply's commands in order and build the follow-up turn."""
        notify(f"Received response ({len(text)} chars)")
        commands = parse_commands(text) if has_commands(text) else []
        if not commands:
            notify("No file operations detected")
            self.reset()
            return TurnDecision()

        notify(f"Found {len(commands)} file operation(s)")
        results: list[OperationResult] = []
        for command in commands:
            cancellation.raise_if_cancelled()
            notify(f"Executing {_describe(command)}")
            results.append(await self.executor.execute(command))

        notify("File operations finished")
        self.reset()
        return TurnDecision(follow_up=serialize_results(results), results=results)


class AgentLoop:
    """Streaming conversation engine with pause and cancellation."""

    def __init__(
        self,
        provider: LLMProvider,
        handler: TurnHandler,
        system_prompt: str,
        max_context: int = 50,
        max_turns: int = 25,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        """Initialize the loop.

        Args:
            provider: Streaming model client
            handler: Turn handler deciding whether a run continues
            system_prompt: Pinned first message of the context
            max_context: Messages kept after the system message when compacting
            max_turns: Maximum follow-up turns submitted per user message
            temperature: Sampling temperature passed to the provider
            max_tokens: Completion token cap passed to the provider
        """
        self.provider = provider
        self.handler = handler
        self.system_prompt = system_prompt
        self.max_context = max(1, int(max_context))
        self.max_turns = max(0, int(max_turns))
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._context: list[Message] = [Message(role="system", content=system_prompt)]
        self._state = RunState.IDLE
        self._paused = False
        self._accumulator: list[str] = []
        self._cancellation: CancellationToken | None = None
        self._run_finished: asyncio.Event | None = None
        self._start_lock = asyncio.Lock()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def context(self) -> list[Message]:
        """Snapshot of the conversation context."""
        return [Message(role=m.role, content=m.content) for m in self._context]

    @property
    def is_running(self) -> bool:
        return self._cancellation is not None

    @property
    def is_paused(self) -> bool:
        return self._paused

    def reset_context(self) -> None:
        """Drop everything but the system message."""
        self._context = [Message(role="system", content=self.system_prompt)]

    def load_context(self, messages: list[Message] | list[dict[str, Any]]) -> None:
        """Restore a saved conversation behind the current system message."""
        restored: list[Message] = []
        for msg in messages:
            role = msg.get("role") if isinstance(msg, dict) else getattr(msg, "role", None)
            content = msg.get("content") if isinstance(msg, dict) else getattr(msg, "content", None)
            if role in {"user", "assistant"} and content is not None:
                restored.append(Message(role=str(role), content=str(content)))
        self._context = [Message(role="system", content=self.system_prompt), *restored]
        self._compact()

    def pause(self, paused: bool = True) -> None:
        """Withhold (or resume) UI delivery; the stream keeps being consumed."""
        self._paused = paused
        if self._state in (RunState.STREAMING, RunState.PAUSED):
            self._state = RunState.PAUSED if paused else RunState.STREAMING

    def abort(self, reason: str = "aborted") -> bool:
        """Cancel the active run, if any."""
        token = self._cancellation
        if token is None or token.is_cancelled:
            return False
        log.info("Aborting run", reason=reason)
        token.cancel(reason)
        self._state = RunState.ABORTED
        return True

    async def chat(
        self,
        message: str,
        on_token: TokenCallback,
        on_system_message: SystemMessageCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        """Run one user message to termination.

        Args:
            message: User message appended to the context
            on_token: Receives streamed fragments while not paused
            on_system_message: Receives progress notices
            cancellation: Optional token; a fresh one is created otherwise

        Raises:
            LLMError: The provider failed; the run ends without a reply
        """
        token = cancellation or CancellationToken()
        finished = asyncio.Event()
        async with self._start_lock:
            await self._terminate_active_run()
            self._cancellation = token
            self._run_finished = finished
            self._paused = False
            self._state = RunState.IDLE

        notify = self._make_notifier(on_system_message)
        log.info("Run started", chars=len(message))
        try:
            await self._run(message, token, on_token, notify)
        except RunCancelledError:
            log.info("Run cancelled", reason=token.reason or "cancelled")
            self._state = RunState.ABORTED
        except LLMError as e:
            log.error("Model stream failed", error=str(e))
            self._state = RunState.IDLE
            raise
        finally:
            self._accumulator = []
            self.handler.reset()
            if self._cancellation is token:
                self._cancellation = None
                self._run_finished = None
            if self._state is not RunState.ABORTED:
                self._state = RunState.IDLE
            finished.set()

    async def _terminate_active_run(self) -> None:
        token = self._cancellation
        finished = self._run_finished
        if token is None or finished is None:
            return
        log.info("Interrupting active run for new message")
        token.cancel("superseded by a new message")
        self._state = RunState.ABORTED
        await finished.wait()
        self._state = RunState.IDLE

    async def _run(
        self,
        message: str,
        token: CancellationToken,
        on_token: TokenCallback,
        notify: SystemMessageCallback,
    ) -> None:
        follow_ups = 0
        content = message
        while True:
            self._context.append(Message(role="user", content=content))
            text = await self._stream_turn(token, on_token, notify)

            token.raise_if_cancelled()
            self._context.append(Message(role="assistant", content=text))
            self._compact()

            decision = await self.handler.on_turn_complete(text, token, notify)
            token.raise_if_cancelled()
            if not decision.should_continue:
                log.info("Run finished", follow_ups=follow_ups)
                return
            if follow_ups >= self.max_turns:
                log.warning("Follow-up limit reached", max_turns=self.max_turns)
                notify(f"Stopped after {self.max_turns} follow-up turns")
                return

            follow_ups += 1
            self._accumulator = []
            content = decision.follow_up

    async def _stream_turn(
        self,
        token: CancellationToken,
        on_token: TokenCallback,
        notify: SystemMessageCallback,
    ) -> str:
        """Consume one streamed reply and return its full text."""
        self._accumulator = []
        self.handler.reset()
        token.raise_if_cancelled()

        self._state = RunState.PAUSED if self._paused else RunState.STREAMING
        stream = self.provider.stream(
            list(self._context),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            cancellation=token,
        )
        cancel_wait = asyncio.create_task(token.wait())
        try:
            while True:
                fragment = await self._next_fragment(stream, cancel_wait)
                if fragment is None:
                    break
                token.raise_if_cancelled()
                self._accumulator.append(fragment)
                if not self._paused:
                    on_token(fragment)
                self.handler.on_token(fragment, notify)
        finally:
            await self._cancel_task(cancel_wait)
            await self._close_stream(stream)

        token.raise_if_cancelled()
        return "".join(self._accumulator)

    async def _next_fragment(self, stream: Any, cancel_wait: asyncio.Task[bool]) -> str | None:
        """Await the next fragment, or raise as soon as the run is cancelled."""

        async def _pull() -> str:
            return await stream.__anext__()

        next_task = asyncio.create_task(_pull())
        done, _ = await asyncio.wait(
            {next_task, cancel_wait},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if next_task in done:
            try:
                return next_task.result()
            except StopAsyncIteration:
                return None
        await self._cancel_task(next_task)
        raise RunCancelledError("Run cancelled while waiting for the model")

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @staticmethod
    async def _close_stream(stream: Any) -> None:
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            log.warning("Closing model stream failed", error=str(e))

    def _compact(self) -> None:
        """Keep the system message plus the last `max_context` messages."""
        if len(self._context) > self.max_context:
            self._context = [self._context[0], *self._context[-self.max_context:]]

    @staticmethod
    def _make_notifier(on_system_message: SystemMessageCallback | None) -> SystemMessageCallback:
        def notify(message: str) -> None:
            log.info("System notice", message=message)
            if on_system_message is not None:
                on_system_message(message)

        return notify


def build_agent(
    config: Config | None = None,
    provider: LLMProvider | None = None,
    workspace: Path | str | None = None,
    instructions: InstructionLoader | None = None,
) -> AgentLoop:
    """Wire provider, sandbox executor and file-operation handler into a loop."""
    cfg = config or get_config()
    if provider is None:
        if config is None:
            provider = get_provider()
        else:
            provider = create_provider(
                provider=cfg.model.provider,
                model=cfg.model.model,
                api_key=cfg.model.resolved_api_key() or None,
                base_url=cfg.model.base_url or None,
                temperature=cfg.model.temperature,
                max_tokens=cfg.model.max_tokens,
                timeout=cfg.model.timeout,
            )
    root = Path(workspace).expanduser() if workspace is not None else cfg.resolved_workspace_path()
    executor = FileOperationExecutor(root)
    return AgentLoop(
        provider=provider,
        handler=FileOperationTurnHandler(executor),
        system_prompt=build_system_prompt(cfg.agent.system_prompt, instructions),
        max_context=cfg.agent.max_context,
        max_turns=cfg.agent.max_turns,
        temperature=cfg.model.temperature,
        max_tokens=cfg.model.max_tokens,
    )
