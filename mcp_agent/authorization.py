"""
Authorization gate for tool calls.

Per call:

    IDLE ─▶ EVALUATING ─┬─▶ AUTO_APPROVED ───────────────┐
                        └─▶ AWAITING_USER_INPUT ─────────┴─▶ RESOLVED (approved | denied | stopped)

should_confirm() precedence:
    1. auto_approve_all and not dangerous       → no confirmation
    2. require_confirmation is False            → no confirmation
    3. matches auto_approve_tools, not dangerous → no confirmation
    4. otherwise (dangerous tools always)        → confirmation

Without a confirmation channel every call needing confirmation is denied.
One gate belongs to one session; nothing here is process-global.
"""

from __future__ import annotations

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp_agent.errors import AuthorizationDenied, SessionStopped

logger = logging.getLogger(__name__)


class ConfirmationResult(str, Enum):
    YES = "yes"
    NO = "no"
    ALL = "all"
    STOP = "stop"


class Verdict(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"
    STOPPED = "stopped"


class GateState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    AUTO_APPROVED = "auto_approved"
    AWAITING_USER_INPUT = "awaiting_user_input"
    RESOLVED = "resolved"


_ANSWERS = {
    "y": ConfirmationResult.YES,
    "yes": ConfirmationResult.YES,
    "n": ConfirmationResult.NO,
    "no": ConfirmationResult.NO,
    "all": ConfirmationResult.ALL,
    "stop": ConfirmationResult.STOP,
}


def parse_answer(answer: str | None) -> ConfirmationResult:
    """Map a typed answer to a result; anything unrecognized means no."""
    if answer is None:
        return ConfirmationResult.NO
    return _ANSWERS.get(answer.strip().lower(), ConfirmationResult.NO)


def matches_pattern(tool_name: str, pattern: str) -> bool:
    """
    Match a tool name against a policy pattern.

    "*" makes the pattern a full-match glob. Without "*", the pattern
    matches the exact name or any server-qualified "<server>_<pattern>".
    """
    if "*" in pattern:
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.fullmatch(regex, tool_name) is not None
    return tool_name == pattern or tool_name.endswith(f"_{pattern}")


def _env_patterns(name: str) -> list[str]:
    return [p.strip() for p in os.environ.get(name, "").split(",") if p.strip()]


@dataclass
class AuthorizationPolicy:
    require_confirmation: bool = True
    auto_approve_tools: list[str] = field(default_factory=list)
    dangerous_tools: list[str] = field(default_factory=list)
    # Sticky for the session; only an "all" answer sets it
    auto_approve_all: bool = False

    @classmethod
    def from_env(cls) -> "AuthorizationPolicy":
        require = os.environ.get("REQUIRE_CONFIRMATION", "true").strip().lower()
        return cls(
            require_confirmation=require not in ("0", "false", "no", "off"),
            auto_approve_tools=_env_patterns("AUTO_APPROVE_TOOLS"),
            dangerous_tools=_env_patterns("DANGEROUS_TOOLS"),
        )


@dataclass
class ToolCallInfo:
    """What the gate needs to know about a proposed call."""
    tool_name: str
    arguments: dict[str, Any] | str = field(default_factory=dict)
    server_name: str | None = None

    def arguments_text(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments, indent=2, ensure_ascii=False)


class ConfirmationChannel(ABC):
    """Interactive text channel to a human."""

    @abstractmethod
    async def ask(self, question: str) -> str | None:
        """Show question and return the typed answer (None if none is available)."""
        ...


class AuthorizationGate:
    """Policy engine plus interactive resolver for one session."""

    def __init__(self, policy: AuthorizationPolicy | None = None, channel: ConfirmationChannel | None = None):
        self.policy = policy or AuthorizationPolicy()
        self.channel = channel
        self.state = GateState.IDLE

    def update_policy(self, **changes: Any) -> None:
        for key, value in changes.items():
            if not hasattr(self.policy, key):
                raise AttributeError(f"Unknown policy field: {key}")
            setattr(self.policy, key, value)

    def set_channel(self, channel: ConfirmationChannel | None) -> None:
        self.channel = channel

    def is_dangerous(self, tool_name: str) -> bool:
        return any(matches_pattern(tool_name, p) for p in self.policy.dangerous_tools)

    def is_auto_approved(self, tool_name: str) -> bool:
        return any(matches_pattern(tool_name, p) for p in self.policy.auto_approve_tools)

    def should_confirm(self, call: ToolCallInfo | str) -> bool:
        name = call if isinstance(call, str) else call.tool_name
        dangerous = self.is_dangerous(name)

        if self.policy.auto_approve_all and not dangerous:
            return False
        if not self.policy.require_confirmation:
            return False
        if self.is_auto_approved(name) and not dangerous:
            return False
        return True

    def render_question(self, call: ToolCallInfo) -> str:
        lines = ["", "About to call tool:", f"   Tool:   {call.tool_name}"]
        if call.server_name:
            lines.append(f"   Server: {call.server_name}")
        lines.append("   Arguments:")
        lines.extend(f"   {line}" for line in call.arguments_text().splitlines() or ["{}"])
        if self.is_dangerous(call.tool_name):
            lines.append("")
            lines.append("   WARNING: this tool is marked as dangerous!")
        lines += [
            "",
            "   Options:",
            "     y    - run this tool call",
            "     n    - skip this tool call",
            "     all  - run it and auto-approve every later call this session",
            "     stop - stop the conversation",
            "",
            "   Choose (y/n/all/stop): ",
        ]
        return "\n".join(lines)

    async def request_confirmation(self, call: ToolCallInfo) -> ConfirmationResult:
        """Ask the human about one call. Fails closed without a channel."""
        if self.channel is None:
            logger.warning(f"No interactive channel; denying {call.tool_name} by default")
            return ConfirmationResult.NO

        answer = await self.channel.ask(self.render_question(call))
        result = parse_answer(answer)
        if answer is not None and answer.strip().lower() not in _ANSWERS:
            logger.info(f"Unrecognized answer {answer!r}; treating as 'no'")
        if result == ConfirmationResult.ALL:
            self.policy.auto_approve_all = True
            logger.info("Auto-approval enabled for the rest of the session")
        return result

    async def authorize(self, call: ToolCallInfo) -> Verdict:
        """Run the full gate for one call and return its verdict."""
        self.state = GateState.EVALUATING
        try:
            if not self.should_confirm(call):
                self.state = GateState.AUTO_APPROVED
                logger.debug(f"Auto-approved {call.tool_name}")
                return Verdict.APPROVED

            self.state = GateState.AWAITING_USER_INPUT
            result = await self.request_confirmation(call)
            if result in (ConfirmationResult.YES, ConfirmationResult.ALL):
                return Verdict.APPROVED
            if result == ConfirmationResult.STOP:
                return Verdict.STOPPED
            return Verdict.DENIED
        finally:
            self.state = GateState.RESOLVED

    async def check(self, call: ToolCallInfo) -> None:
        """
        Raise unless the call may run.

        Raises:
            AuthorizationDenied: the call was refused.
            SessionStopped: the user stopped the conversation.
        """
        verdict = await self.authorize(call)
        if verdict == Verdict.STOPPED:
            raise SessionStopped("User stopped the conversation")
        if verdict == Verdict.DENIED:
            raise AuthorizationDenied("Tool call cancelled by user")
