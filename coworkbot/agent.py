"""Agent orchestration for Coworkbot."""

import asyncio
from typing import Any, Awaitable, Callable, Iterable

from coworkbot.attachments import SubmitInput, build_user_content
from coworkbot.broker import ConfirmationBroker
from coworkbot.config import Config, get_config
from coworkbot.content import ContentBlock, Message, Stage, TextBlock, ToolUseBlock, WorkMode
from coworkbot.error_handler import (
    backoff_delay,
    classify_error,
    is_rate_limit_error,
    is_sensitive_content_error,
    sensitive_content_retry_message,
)
from coworkbot.events import AgentObserver, EventDispatcher, EventType
from coworkbot.exceptions import ConfigurationError
from coworkbot.llm import LLMProvider, StreamChatRequest, TokenBuffer, create_provider
from coworkbot.logging import get_logger
from coworkbot.permissions import FolderPathAuthority, MemoryPermissionStore, PathAuthority, PermissionStore
from coworkbot.prompts import PromptBuilder
from coworkbot.state import ConversationState
from coworkbot.task_analyzer import TaskAnalyzer
from coworkbot.tool_executor import ToolExecutor, permission_path
from coworkbot.tools import ToolRegistry, create_default_registry

log = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class ToolPromptCache:
    """Memo cell for the tool list and system prompt of one work mode.

    Recomputed when the requested mode differs from the cached one or after
    ``invalidate`` (the tool set changed).
    """

    def __init__(self) -> None:
        self._key: WorkMode | None = None
        self._value: tuple[list[dict[str, Any]], str] | None = None
        self._dirty = True
        self.computations = 0

    def invalidate(self) -> None:
        self._dirty = True

    def get(
        self,
        mode: WorkMode,
        compute: Callable[[WorkMode], tuple[list[dict[str, Any]], str]],
    ) -> tuple[list[dict[str, Any]], str]:
        if self._dirty or self._value is None or self._key != mode:
            self._value = compute(mode)
            self._key = mode
            self._dirty = False
            self.computations += 1
        return self._value


class Agent:
    """Drives the THINKING -> PLANNING -> EXECUTING -> FEEDBACK cycle.

    One submission cycle runs at a time. Everything the outside world sees
    goes through the injected observers.
    """

    def __init__(
        self,
        config: Config | None = None,
        provider: LLMProvider | None = None,
        registry: ToolRegistry | None = None,
        prompt_builder: PromptBuilder | None = None,
        permission_store: PermissionStore | None = None,
        path_authority: PathAuthority | None = None,
        observers: Iterable[AgentObserver] | None = None,
        sleep: SleepFn | None = None,
        analyzer: TaskAnalyzer | None = None,
    ):
        self.config = config or get_config()
        self.dispatcher = EventDispatcher(observers)
        self.state = ConversationState(self.dispatcher, max_history=self.config.agent.max_history)
        self.broker = ConfirmationBroker(self.dispatcher)
        self.registry = registry or create_default_registry(self.config)
        self.permission_store = permission_store or MemoryPermissionStore()
        folders = FolderPathAuthority(self.config.tools.authorized_folders)
        self.path_authority = path_authority or folders
        self.prompt_builder = prompt_builder or PromptBuilder(path_authority=folders)
        self.analyzer = analyzer or TaskAnalyzer()
        self.provider = provider or create_provider(
            provider=self.config.model.provider,
            api_key=self.config.model.api_key,
            base_url=self.config.model.base_url or None,
            timeout=self.config.model.request_timeout,
        )
        base_folders = folders.folders
        self.executor = ToolExecutor(
            registry=self.registry,
            state=self.state,
            broker=self.broker,
            dispatcher=self.dispatcher,
            permission_store=self.permission_store,
            path_authority=self.path_authority,
            tools_config=self.config.tools,
            base_path=base_folders[0] if base_folders else None,
        )
        self.work_mode = WorkMode.parse(self.config.agent.work_mode)
        self.tool_cache = ToolPromptCache()
        self.registry.add_change_listener(self.tool_cache.invalidate)
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._cancel_event: asyncio.Event | None = None
        self._retired_providers: list[LLMProvider] = []
        self.processing = False
        self.iterations = 0

    @property
    def history(self) -> list[Message]:
        return self.state.messages

    @property
    def stage(self) -> Stage:
        return self.state.stage

    def subscribe(self, observer: AgentObserver) -> None:
        self.dispatcher.subscribe(observer)

    # ------------------------------------------------------------------
    # Inbound operations

    async def submit(self, submission: str | SubmitInput) -> bool:
        """Run one submission cycle.

        Returns False without touching history when a cycle is already in
        flight; errors inside the cycle are reported through observers.
        """
        if self.processing:
            log.warning("Submission rejected, agent is busy")
            return False

        self.processing = True
        self._cancel_event = asyncio.Event()
        cancel_event = self._cancel_event
        self.iterations = 0
        try:
            if not isinstance(submission, SubmitInput):
                submission = SubmitInput(text=str(submission or ""))
            text = self._apply_task_analysis(submission.text)
            content = build_user_content(text, list(submission.images), self.config.attachments)
            self.state.append(Message(role="user", content=content))
            await self._run_loop(cancel_event)
        except Exception as e:
            self._report_error(e)
        finally:
            self.processing = False
            self._cancel_event = None
            self.state.set_stage(Stage.IDLE)
            self.state.publish_history()
            await self._close_retired_providers()
        return True

    def abort(self) -> None:
        """Cancel the running cycle at its next checkpoint.

        Pending confirmations resolve to denied and questions to closed so a
        waiting tool call cannot hold the cycle open.
        """
        if self._cancel_event is None:
            return
        log.info("Abort requested")
        self._cancel_event.set()
        self.broker.teardown()

    def respond_confirmation(self, request_id: str, approved: bool, remember: bool = False) -> bool:
        if approved and remember:
            payload = self.broker.pending_confirmation(request_id)
            if payload and payload.get("tool"):
                path = payload.get("path") or permission_path(payload.get("args") or {})
                self.permission_store.grant(str(payload["tool"]), path)
        return self.broker.respond_confirmation(request_id, approved)

    def respond_question(self, request_id: str, answer: str) -> bool:
        return self.broker.respond_question(request_id, answer)

    def close_surface(self) -> int:
        """The surface owning pending requests went away."""
        return self.broker.teardown()

    def set_work_mode(self, mode: WorkMode | str) -> WorkMode:
        self.work_mode = WorkMode.parse(mode)
        self.config.agent.work_mode = self.work_mode.value
        log.info("Work mode changed", mode=self.work_mode.value)
        return self.work_mode

    async def update_provider_config(
        self,
        model: str | None = None,
        endpoint: str | None = None,
        credential: str | None = None,
        provider: str | None = None,
    ) -> None:
        """Apply new model settings; the provider client is rebuilt when needed."""
        cfg = self.config.model
        rebuild = False
        if model is not None:
            cfg.model = model
        if endpoint is not None and endpoint != cfg.base_url:
            cfg.base_url = endpoint
            rebuild = True
        if credential is not None and credential != cfg.api_key:
            cfg.api_key = credential
            rebuild = True
        if provider is not None and provider != cfg.provider:
            cfg.provider = provider
            rebuild = True
        if not rebuild:
            return

        new_provider = create_provider(
            provider=cfg.provider,
            api_key=cfg.api_key,
            base_url=cfg.base_url or None,
            timeout=cfg.request_timeout,
        )
        old, self.provider = self.provider, new_provider
        log.info("Provider updated", provider=new_provider.provider_name, base_url=new_provider.base_url)
        self._retired_providers.append(old)
        if not self.processing:
            await self._close_retired_providers()

    async def check_connection(self) -> bool:
        """Lightweight reachability check of the configured provider."""
        try:
            self._validate_provider_config()
            return await self.provider.check_connection(self.config.model.model)
        except Exception as e:
            classification = classify_error(e)
            log.warning("Connection check failed", classification=classification.type, error=str(e))
            self.dispatcher.emit(
                EventType.ERROR,
                {"message": classification.user_message, "classification": classification.type},
            )
            return False

    def clear_history(self) -> None:
        if self.processing:
            log.warning("Cannot clear history while a request is running")
            return
        self.state.clear()

    def load_history(self, messages: list[Message | dict[str, Any]]) -> None:
        if self.processing:
            log.warning("Cannot load history while a request is running")
            return
        self.state.load([m if isinstance(m, Message) else Message.from_dict(m) for m in messages])

    def delete_from(self, message_id: str) -> list[Message]:
        """Drop a message and everything after it (edit / regenerate)."""
        if self.processing:
            log.warning("Cannot delete history while a request is running")
            return []
        return self.state.truncate_from(message_id)

    async def shutdown(self) -> None:
        self.abort()
        self.broker.teardown()
        self.registry.remove_change_listener(self.tool_cache.invalidate)
        self._retired_providers.append(self.provider)
        await self._close_retired_providers()

    # ------------------------------------------------------------------
    # Loop

    def _apply_task_analysis(self, text: str) -> str:
        if self.work_mode.value not in self.config.agent.todo_analysis_modes or not text.strip():
            return text
        if self.analyzer.is_informational_query(text):
            return text
        analysis = self.analyzer.analyze(text)
        if not analysis.requires_todo:
            return text
        log.info(
            "Complex task detected",
            score=analysis.score,
            complexity=analysis.complexity,
        )
        self.dispatcher.emit(
            EventType.TODO_RECOMMENDED,
            {
                "complexity": analysis.complexity,
                "reason": analysis.reason,
                "estimatedSteps": analysis.estimated_steps,
            },
        )
        return self.prompt_builder.build_todo_reminder(analysis) + "\n\n" + text

    def _compute_tools_and_prompt(self, mode: WorkMode) -> tuple[list[dict[str, Any]], str]:
        tools = self.registry.list_tools(mode)
        return tools, self.prompt_builder.build(mode, tools)

    def _validate_provider_config(self) -> None:
        cfg = self.config.model
        if not cfg.api_key.strip():
            raise ConfigurationError("API key is not configured. Set it for the current provider in settings.")
        if not cfg.model.strip():
            raise ConfigurationError("Model is not configured. Choose a model in settings.")
        if not (cfg.base_url or "").strip():
            raise ConfigurationError("Base URL is not configured. Set it in settings.")

    async def _run_loop(self, cancel_event: asyncio.Event) -> None:
        agent_cfg = self.config.agent
        iteration = 0
        rate_limit_retries = 0
        sensitive_retries = 0

        while iteration < agent_cfg.max_iterations:
            if cancel_event.is_set():
                log.info("Cycle cancelled", iteration=iteration)
                return
            iteration += 1
            self.iterations = iteration
            log.info("Loop iteration", iteration=iteration)

            tools, system_prompt = self.tool_cache.get(self.work_mode, self._compute_tools_and_prompt)
            if self.state.stage != Stage.THINKING:
                self.state.set_stage(Stage.THINKING, {"iteration": iteration})

            try:
                self._validate_provider_config()
                blocks = await self._stream(tools, system_prompt, cancel_event)
            except Exception as e:
                if is_rate_limit_error(e) and rate_limit_retries < agent_cfg.max_rate_limit_retries:
                    delay = backoff_delay(rate_limit_retries, agent_cfg.backoff_base_ms, agent_cfg.backoff_max_ms)
                    rate_limit_retries += 1
                    log.warning("Rate limited, backing off", delay=delay, retry=rate_limit_retries)
                    self._announce_retry(f"Rate limited, retrying in {delay:g}s.", rate_limit_retries)
                    iteration -= 1
                    self.iterations = iteration
                    await self._sleep(delay)
                    continue
                if is_sensitive_content_error(e) and sensitive_retries < agent_cfg.max_sensitive_retries:
                    delay = backoff_delay(sensitive_retries, agent_cfg.backoff_base_ms, agent_cfg.backoff_max_ms)
                    sensitive_retries += 1
                    log.warning("Response blocked by content filter, retrying", delay=delay, retry=sensitive_retries)
                    self._announce_retry("Response was filtered, retrying.", sensitive_retries)
                    await self._sleep(delay)
                    self.state.append(Message(role="user", content=sensitive_content_retry_message()))
                    continue
                raise
            rate_limit_retries = 0

            if cancel_event.is_set():
                partial = [b for b in blocks if isinstance(b, TextBlock)]
                if partial:
                    self.state.append(Message(role="assistant", content=list(partial)))
                log.info("Cycle cancelled during streaming", kept_text=bool(partial))
                return

            if not blocks:
                self.state.set_stage(Stage.FEEDBACK)
                return

            self.state.append(Message(role="assistant", content=blocks))
            tool_uses = [b for b in blocks if isinstance(b, ToolUseBlock)]
            if not tool_uses:
                self.state.set_stage(Stage.FEEDBACK)
                return

            self.state.set_stage(Stage.PLANNING, {"toolCount": len(tool_uses)})
            results = await self.executor.execute_tools(tool_uses, self.work_mode, cancel_event)
            self.state.append(Message(role="user", content=list(results)))
            self.state.set_stage(Stage.THINKING, {"iteration": iteration + 1})

        log.warning("Max iterations reached", max_iterations=agent_cfg.max_iterations)
        self.dispatcher.emit(
            EventType.STATUS,
            {"message": f"Stopped after {agent_cfg.max_iterations} iterations."},
        )

    def _announce_retry(self, message: str, retry: int) -> None:
        # Tokens already emitted for the failed attempt are superseded.
        self.dispatcher.emit(
            EventType.STATUS,
            {"message": message, "retry": retry, "discardStreamed": True},
        )

    async def _stream(
        self,
        tools: list[dict[str, Any]],
        system_prompt: str,
        cancel_event: asyncio.Event,
    ) -> list[ContentBlock]:
        streaming = self.config.streaming
        buffer = TokenBuffer(
            lambda text: self.dispatcher.emit(EventType.TOKEN_EMITTED, {"token": text}),
            batch_size=streaming.token_batch_size,
            flush_interval_ms=streaming.token_flush_interval_ms,
        )
        request = StreamChatRequest(
            model=self.config.model.model,
            system_prompt=system_prompt,
            messages=self.state.messages,
            tools=tools,
            max_tokens=self.config.model.max_tokens,
            cancel_event=cancel_event,
            on_token=buffer.add,
        )
        log.debug(
            "Sending request",
            provider=self.provider.provider_name,
            model=request.model,
            base_url=self.provider.base_url,
        )
        try:
            return await self.provider.stream_chat(request)
        finally:
            buffer.close()

    def _report_error(self, error: Exception) -> None:
        classification = classify_error(error)
        log.error(
            "Agent loop error",
            classification=classification.type,
            error=str(error),
            exc_info=classification.type == "unknown",
        )
        self.dispatcher.emit(
            EventType.ERROR,
            {"message": classification.user_message, "classification": classification.type},
        )

    async def _close_retired_providers(self) -> None:
        while self._retired_providers:
            provider = self._retired_providers.pop()
            await provider.close()
