"""
Cosmic Works - Agent Session
=============================
One conversation with Cosmo: a history, a tool-bound chat model, and the
tool-calling loop that turns a prompt into an answer.

Loop
----
    1. Build messages: system prompt → history → new prompt.
    2. Call the chat model (tools bound, timeout enforced).
    3. No tool calls → the message text is the final answer.
    4. Tool calls → for each: look up the tool by name in the closed
       toolset, validate arguments, ``await tool.run``, append the
       ``AIMessage`` and a ``ToolMessage`` to the scratchpad.  Go to 2.
    5. More than ``max_rounds`` tool rounds → ``AgentExhausted``.
    6. On success append ``human`` then ``assistant`` to history.

Failure policy
--------------
Any failure aborts the turn and leaves history untouched:
    • chat model error / timeout  → ``CompletionServiceError`` (no retry)
    • tool raised, unknown tool,
      or invalid tool arguments    → ``ToolExecutionError``
    • round limit exceeded         → ``AgentExhausted``

Concurrency
-----------
Turns of one session are serialized by a per-session ``asyncio.Lock``,
so round N always sees round N-1's output and history order equals
completion order.  Different sessions never share state.

Usage:
    session = AgentSession("abc", chat_model, toolset)
    answer = await session.run("Do you sell bicycles?")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from cosmic_works.config.prompt_templates import EMPTY_SEARCH_OBSERVATION, NOT_FOUND_OBSERVATION, SYSTEM_PROMPT, UNKNOWN_RESPONSE
from cosmic_works.src.core.errors import AgentExhausted, CompletionServiceError, ToolExecutionError
from cosmic_works.src.core.tools import RetrievalTool
from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)

Role = Literal["human", "assistant"]


# ── Data Model ────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Message:
    """One history entry."""

    role: Role
    content: str


@dataclass(frozen=True, slots=True)
class ToolInvocationRecord:
    """One tool call within a turn.  Never stored in history."""

    tool: str
    tool_input: str
    output: str | None


@dataclass(frozen=True, slots=True)
class AgentTurn:
    """Result of one successful turn."""

    answer: str
    steps: tuple[ToolInvocationRecord, ...]


# ══════════════════════════════════════════════════════════════════════
#  AGENT SESSION
# ══════════════════════════════════════════════════════════════════════


class AgentSession:
    """
    Owns one conversation history and runs the tool-calling loop for it.

    Parameters
    ----------
    session_id
        Registry key this session belongs to (used in logs).
    llm
        Chat model supporting ``bind_tools`` (e.g. ``ChatGoogleGenerativeAI``).
    tools
        Closed toolset, name → tool.
    max_rounds
        Maximum tool-call rounds per turn.
    timeout
        Seconds allowed per chat model call.
    log_intermediate_steps
        Log every ``ToolInvocationRecord`` at INFO level.
    system_prompt
        Override the Cosmo system prompt.
    """

    __slots__ = ("session_id", "_llm", "_tools", "_history", "_max_rounds", "_timeout", "_log_steps", "_system_prompt", "_lock")

    def __init__(self, session_id: str, llm: BaseChatModel, tools: Mapping[str, RetrievalTool], max_rounds: int = 10, timeout: float = 60.0, log_intermediate_steps: bool = False, system_prompt: str = SYSTEM_PROMPT) -> None:
        self.session_id = session_id
        self._tools = dict(tools)
        self._llm = llm.bind_tools([tool.as_langchain_tool() for tool in self._tools.values()])
        self._history: list[Message] = []
        self._max_rounds = max_rounds
        self._timeout = timeout
        self._log_steps = log_intermediate_steps
        self._system_prompt = system_prompt
        self._lock = asyncio.Lock()


    @property
    def history(self) -> tuple[Message, ...]:
        """Snapshot of the conversation so far."""
        return tuple(self._history)


    async def run(self, prompt: str) -> str:
        """Run one turn and return only the answer text."""
        turn = await self.invoke(prompt)
        return turn.answer


    async def invoke(self, prompt: str) -> AgentTurn:
        """
        Run one turn of the tool-calling loop.

        Returns
        -------
        AgentTurn
            The final answer and the tool calls made on the way.

        Raises
        ------
        CompletionServiceError, ToolExecutionError, AgentExhausted
            History is left unchanged.
        """
        async with self._lock:
            t_start = time.perf_counter()
            messages = self._build_messages(prompt)
            steps: list[ToolInvocationRecord] = []
            rounds = 0

            logger.info("[AGENT] Session '%s' turn started (history=%d).", self.session_id, len(self._history))

            while True:
                response = await self._complete(messages)
                tool_calls = response.tool_calls or []

                if not tool_calls:
                    answer = _message_text(response) or UNKNOWN_RESPONSE
                    break

                if rounds >= self._max_rounds:
                    logger.warning("[AGENT] Session '%s' exhausted %d tool round(s).", self.session_id, self._max_rounds)
                    raise AgentExhausted(self._max_rounds)
                rounds += 1

                messages.append(response)
                for call in tool_calls:
                    record = await self._execute(call)
                    steps.append(record)
                    messages.append(ToolMessage(content=_observation(record.output), tool_call_id=call.get("id") or record.tool))

            self._history.extend((Message("human", prompt), Message("assistant", answer)))

            total_ms = (time.perf_counter() - t_start) * 1000
            logger.info("[AGENT] Session '%s' turn complete in %.1fms (rounds=%d, tools=%s).", self.session_id, total_ms, rounds, [s.tool for s in steps])
            return AgentTurn(answer=answer, steps=tuple(steps))

    # ══════════════════════════════════════════════════════════════════
    #  LOOP STEPS
    # ══════════════════════════════════════════════════════════════════

    def _build_messages(self, prompt: str) -> list[BaseMessage]:
        messages: list[BaseMessage] = [SystemMessage(content=self._system_prompt)]
        for msg in self._history:
            messages.append(HumanMessage(content=msg.content) if msg.role == "human" else AIMessage(content=msg.content))
        messages.append(HumanMessage(content=prompt))
        return messages


    async def _complete(self, messages: list[BaseMessage]) -> AIMessage:
        t_llm = time.perf_counter()
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[AGENT] Chat model timed out after %.1fs.", self._timeout)
            raise CompletionServiceError(f"Chat model timed out after {self._timeout}s") from exc
        except Exception as exc:
            logger.exception("[AGENT] Chat model call failed.")
            raise CompletionServiceError(f"Chat model call failed: {exc}") from exc

        logger.debug("[AGENT] Chat model responded in %.1fms (tool_calls=%d).", (time.perf_counter() - t_llm) * 1000, len(getattr(response, "tool_calls", None) or []))
        return response


    async def _execute(self, call: Mapping[str, Any]) -> ToolInvocationRecord:
        name = str(call.get("name", ""))
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(name, f"unknown tool; available: {sorted(self._tools)}")

        tool_input = tool.parse_input(call.get("args") or {})
        try:
            output = await tool.run(tool_input)
        except ToolExecutionError:
            raise
        except Exception as exc:
            logger.exception("[AGENT] Tool '%s' raised.", name)
            raise ToolExecutionError(name, str(exc)) from exc

        record = ToolInvocationRecord(tool=name, tool_input=tool_input, output=output)
        if self._log_steps:
            logger.info("[AGENT] Step: tool=%s input=%r output=%r", record.tool, record.tool_input, record.output)
        return record


    def __repr__(self) -> str:
        return f"AgentSession(session_id='{self.session_id}', messages={len(self._history)})"


# ── Helpers ────────────────────────────────────────────────────────────

def _observation(output: str | None) -> str:
    """Text the model sees for a tool result."""
    if output is None:
        return NOT_FOUND_OBSERVATION
    if not output.strip():
        return EMPTY_SEARCH_OBSERVATION
    return output


def _message_text(message: AIMessage) -> str:
    """Flatten an ``AIMessage`` body (plain string or content blocks) to text."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts).strip()
