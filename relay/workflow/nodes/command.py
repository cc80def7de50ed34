"""
Command Execution Node - The state machine for command intents.

Handles command_execute, command_guide and command_automate; any other
intent passes through untouched.

State Machine:
=============
```
                       ┌──────────────────────┐
 command_guide ───────▶│ guide                │ command.guide (300s)
                       └──────────────────────┘
                       ┌──────────────────────┐
 command_execute ─────▶│ shell_execute        │ command.execute (60s)
                       └──────────────────────┘
                       ┌──────────────────────┐   pending clarification
 command_automate ────▶│ replan?              │──────────────────────┐
                       └──────────┬───────────┘                      │
                                  │ no                               ▼
                       ┌──────────▼───────────┐  disabled /  ┌──────────────────────┐
                       │ automate_computer_use│─────────────▶│ automate_static_plan │
                       │ command.computer-use │  init failed │ command.automate     │
                       └──────────────────────┘              └──────────────────────┘
```

Failure Handling:
================
- Service unreachable (connection refused, breaker open) and the message
  talks about screen content → retry the graph as screen_intelligence
  instead of failing.
- Timeouts: automation treats them like unreachable; shell/guide ask the
  user to try again.
- Anything else is logged with its traceback and turned into a single
  apology. The node never raises.

Computer-use automation streams its progress over a separate channel.
This node only issues the initiating call and returns.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from relay.core.config import Settings
from relay.services.client import ServiceClient
from relay.services.errors import ServiceError, ServiceTimeoutError, ServiceUnavailableError
from relay.services.registry import COMMAND_SERVICE
from relay.workflow.clarification import (
    PendingClarification,
    find_pending_clarification,
    format_clarification_answer,
)
from relay.workflow.intents import COMMAND_INTENTS, IntentType
from relay.workflow.nodes.automation import (
    AutomationOutcome,
    AutomationPlan,
    AutomationVerifier,
    ServiceReportedVerifier,
)
from relay.workflow.nodes.base import WorkflowNode
from relay.workflow.nodes.command_output import format_command_output
from relay.workflow.state import WorkflowIntent, WorkflowState


logger = logging.getLogger("relay.workflow.nodes.command")

ACTION_EXECUTE = "command.execute"
ACTION_GUIDE = "command.guide"
ACTION_AUTOMATE = "command.automate"
ACTION_COMPUTER_USE = "command.computer-use"

SCREEN_FALLBACK_CONFIDENCE = 0.95

SCREEN_KEYWORDS = [
    "what", "which", "where", "how", "show", "see", "display", "view", "look", "watch", "read",
    "screen", "page", "chapter", "section", "article", "paragraph", "line", "tab", "window",
    "browser", "website", "site", "reading", "viewing", "watching", "looking at", "on my screen",
    "document", "file", "video", "image", "picture", "photo", "title", "heading", "text",
    "content", "verse", "passage",
]
_SCREEN_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(keyword) for keyword in SCREEN_KEYWORDS) + r")\b",
    re.I,
)

APOLOGY_ANSWER = "Sorry, something went wrong while running that command. Please try again."
UNAVAILABLE_ANSWER = "I can't reach the command service right now. Please try again in a moment."
TIMEOUT_ANSWER = "That command took too long to complete. Please try again."
GUIDE_FAILED_ANSWER = "I'm sorry, I couldn't create a guide for that. Please try rephrasing your request."
UNCERTAIN_ANSWER = (
    "I attempted that, but I couldn't confirm it worked. Please check that it did what you expected."
)
ALLOWED_CATEGORIES_ANSWER = (
    "I can only run commands for opening applications, checking system information, "
    "and reading files and directories."
)


def mentions_screen_content(*texts: Optional[str]) -> bool:
    """True when any text uses visual/content vocabulary."""
    return any(text and _SCREEN_PATTERN.search(text) for text in texts)


def format_execution_failure(response: Dict[str, Any]) -> str:
    """User-facing message for command.execute success=false, tailored by risk tier."""
    error = response.get("error") or "Unknown error"
    message = f"I couldn't execute that command: {error}"
    risk_level = response.get("riskLevel")
    # Risk tier outranks the category check
    if risk_level == "critical":
        return message + " This command is blocked for security reasons."
    if risk_level == "high":
        return message + " This command requires elevated privileges that I cannot provide."
    if "not in allowed categories" in error:
        return f"I couldn't execute that command. {ALLOWED_CATEGORIES_ANSWER}"
    return message


def format_guide(guide: Dict[str, Any]) -> str:
    """Markdown rendering of a structured guide."""
    lines: List[str] = [f"## {guide.get('title') or 'Guide'}", ""]

    if guide.get("intro"):
        lines.extend([guide["intro"], ""])

    steps = guide.get("steps") or []
    if steps:
        lines.extend(["### Steps", ""])
        for index, step in enumerate(steps, start=1):
            if isinstance(step, str):
                lines.append(f"{index}. {step}")
                continue
            title = step.get("title") or step.get("description") or f"Step {index}"
            lines.append(f"{index}. **{title}**")
            if step.get("title") and step.get("description"):
                lines.append(f"   {step['description']}")
            if step.get("command"):
                lines.extend(["   ```", f"   {step['command']}", "   ```"])
        lines.append("")

    troubleshooting = guide.get("troubleshooting") or []
    if troubleshooting:
        lines.extend(["### Troubleshooting", ""])
        for item in troubleshooting:
            if isinstance(item, dict):
                lines.append(f"- **{item.get('problem', '')}**: {item.get('solution', '')}")
            else:
                lines.append(f"- {item}")
        lines.append("")

    return "\n".join(lines).strip()


class CommandExecutionNode(WorkflowNode):
    """
    Shell execution, guides and UI automation.

    Args:
        client: ServiceClient for the command service
        verifier: Policy classifying automation responses
        config: Settings (timeouts, computer-use switch)
    """

    name = "execute_command"

    def __init__(
        self,
        client: ServiceClient,
        verifier: Optional[AutomationVerifier] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(client=client, config=config)
        self.verifier = verifier or ServiceReportedVerifier()

    async def run(self, state: WorkflowState) -> WorkflowState:
        intent_type = state.intent_type
        if intent_type not in COMMAND_INTENTS:
            return state

        try:
            if intent_type == IntentType.COMMAND_GUIDE:
                await self._guide(state)
            elif intent_type == IntentType.COMMAND_AUTOMATE:
                await self._automate(state)
            else:
                await self._shell_execute(state)
        except ServiceUnavailableError as e:
            self._handle_unavailable(state, e)
        except ServiceTimeoutError as e:
            if intent_type == IntentType.COMMAND_AUTOMATE:
                self._handle_unavailable(state, e)
            else:
                logger.warning(f"[{state.trace_id}] {e.message}")
                state.error = e.message
                state.answer = TIMEOUT_ANSWER
                state.command_executed = False
        except Exception as e:
            logger.error(f"[{state.trace_id}] Command execution failed: {e}", exc_info=True)
            state.error = str(e) or type(e).__name__
            state.answer = APOLOGY_ANSWER
            state.command_executed = False

        return state

    # -------------------------------------------------------------------------
    # SHARED
    # -------------------------------------------------------------------------

    async def _call(self, state: WorkflowState, action: str, payload: Dict[str, Any], timeout_ms: int) -> Dict[str, Any]:
        return await self.client.call(
            COMMAND_SERVICE,
            action,
            payload,
            timeout_ms=timeout_ms,
            trace_id=state.trace_id,
            context=state.context.service_context(),
        )

    def _handle_unavailable(self, state: WorkflowState, error: ServiceError) -> None:
        """Fall back to screen analysis for screen questions, otherwise apologize."""
        if mentions_screen_content(state.message, state.resolved_message):
            logger.info(
                f"[{state.trace_id}] Command service unavailable ({error.code}); "
                "retrying as screen_intelligence"
            )
            state.retry_with_intent = IntentType.SCREEN_INTELLIGENCE
            state.intent = WorkflowIntent(
                type=IntentType.SCREEN_INTELLIGENCE,
                confidence=SCREEN_FALLBACK_CONFIDENCE,
                fallback_from=state.intent_type,
            )
            state.error = None
            state.command_executed = False
            return

        logger.warning(f"[{state.trace_id}] Command service unavailable: {error.message}")
        state.error = "Command service unavailable"
        state.answer = UNAVAILABLE_ANSWER
        state.command_executed = False

    # -------------------------------------------------------------------------
    # SHELL EXECUTE
    # -------------------------------------------------------------------------

    async def _shell_execute(self, state: WorkflowState) -> None:
        response = await self._call(
            state,
            ACTION_EXECUTE,
            {
                "command": state.command_text,
                "originalMessage": state.message,
                "context": state.context.execution_context(),
            },
            self.config.COMMAND_TIMEOUT_MS,
        )
        slots = state.intent_context.slots

        if response.get("requiresConfirmation") and not response.get("success"):
            command = response.get("interpretedCommand") or state.message
            state.requires_confirmation = True
            state.confirmation_details = {
                "command": command,
                "category": response.get("category"),
                "riskLevel": response.get("riskLevel"),
                "originalMessage": state.message,
                "resolvedMessage": state.resolved_message,
            }
            state.answer = response.get("confirmationMessage") or (
                f"This command needs your confirmation before I run it: `{command}`"
            )
            state.command_executed = False
            slots["requiresConfirmation"] = True
            slots["confirmationDetails"] = state.confirmation_details
            return

        if not response.get("success"):
            state.command_error = response.get("error") or "Unknown error"
            state.executed_command = response.get("interpretedCommand")
            state.error = state.command_error
            state.answer = format_execution_failure(response)
            state.command_executed = False
            slots["command_error"] = state.command_error
            logger.info(f"[{state.trace_id}] Command rejected: {state.command_error} (risk={response.get('riskLevel')})")
            return

        state.command_executed = True
        state.executed_command = response.get("executedCommand") or response.get("interpretedCommand")
        slots.update({
            "command_executed": True,
            "executedCommand": state.executed_command,
            "category": response.get("category"),
            "executionTime": response.get("executionTime"),
        })

        formatted = format_command_output(response)
        if formatted is not None:
            state.answer = formatted
            slots["output"] = formatted
        else:
            state.command_output = response.get("output") or response.get("rawOutput") or ""
            state.needs_interpretation = True
            slots["output"] = state.command_output

    # -------------------------------------------------------------------------
    # GUIDE
    # -------------------------------------------------------------------------

    async def _guide(self, state: WorkflowState) -> None:
        response = await self._call(
            state,
            ACTION_GUIDE,
            {"request": state.command_text, "context": state.context.execution_context()},
            self.config.GUIDE_TIMEOUT_MS,
        )

        if not response.get("success"):
            state.error = response.get("error") or "Guide generation failed"
            state.answer = GUIDE_FAILED_ANSWER
            state.command_executed = False
            return

        guide = response.get("guide") or {}
        steps = guide.get("steps") or []
        state.answer = format_guide(guide)
        state.command_executed = False
        state.intent_context.slots.update({
            "guideId": guide.get("guideId") or response.get("guideId"),
            "title": guide.get("title"),
            "steps": steps,
            "totalSteps": len(steps),
        })

    # -------------------------------------------------------------------------
    # AUTOMATE
    # -------------------------------------------------------------------------

    def _computer_use_enabled(self, state: WorkflowState) -> bool:
        return (
            self.config.COMPUTER_USE_ENABLED
            and not state.context.disable_computer_use
            and not state.context.computer_use_failed
        )

    async def _automate(self, state: WorkflowState) -> None:
        pending = find_pending_clarification(state.conversation_history)
        if pending is not None:
            await self._replan(state, pending)
            return

        if self._computer_use_enabled(state):
            try:
                if await self._start_computer_use(state):
                    return
            except (ServiceUnavailableError, ServiceTimeoutError):
                raise
            except ServiceError as e:
                logger.warning(f"[{state.trace_id}] Computer-use initiation failed: {e.message}")
            state.context.computer_use_failed = True
            state.intent_context.slots["computerUseFailed"] = True
            logger.info(f"[{state.trace_id}] Falling back to static automation plan")

        await self._static_plan(state, state.command_text)

    async def _start_computer_use(self, state: WorkflowState) -> bool:
        """Initiate a streaming computer-use session. Returns False if the service declined."""
        goal = state.command_text
        execution_context = state.context.execution_context()
        response = await self._call(
            state,
            ACTION_COMPUTER_USE,
            {"goal": goal, "context": execution_context},
            self.config.COMPUTER_USE_TIMEOUT_MS,
        )
        if not response.get("success"):
            logger.warning(f"[{state.trace_id}] Computer-use declined: {response.get('error')}")
            return False

        state.intent_context.slots.update({
            "mode": "computer_use",
            "goal": goal,
            "context": execution_context,
            "automationId": response.get("automationId") or response.get("sessionId"),
            "status": "started",
        })
        state.command_executed = False
        logger.info(f"[{state.trace_id}] Computer-use session started")
        return True

    async def _replan(self, state: WorkflowState, pending: PendingClarification) -> None:
        logger.info(f"[{state.trace_id}] Replanning '{pending.original_command[:50]}' with clarification answer")
        await self._static_plan(
            state,
            pending.original_command,
            clarification_answers={
                "userResponse": state.message,
                "questions": pending.questions,
            },
        )

    async def _static_plan(
        self,
        state: WorkflowState,
        command: str,
        clarification_answers: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {"command": command, "context": state.context.execution_context()}
        if clarification_answers is not None:
            payload["clarificationAnswers"] = clarification_answers

        response = await self._call(state, ACTION_AUTOMATE, payload, self.config.AUTOMATION_TIMEOUT_MS)
        slots = state.intent_context.slots

        if response.get("needsClarification"):
            questions = [str(q) for q in response.get("clarificationQuestions") or response.get("questions") or []]
            slots.update({
                "mode": "static_plan",
                "originalCommand": command,
                "clarificationQuestions": questions,
                "needsClarification": True,
            })
            state.needs_clarification = True
            state.clarification_questions = questions
            state.answer = format_clarification_answer(questions)
            state.command_executed = False
            return

        outcome = self.verifier.assess(response)
        if outcome == AutomationOutcome.FAILED:
            error = response.get("error") or "Automation failed"
            state.error = error
            state.answer = f"I wasn't able to complete that automation: {error}"
            state.command_executed = False
            return

        plan = response.get("plan")
        if isinstance(plan, dict) and plan.get("steps"):
            automation_plan = AutomationPlan.from_response(plan, goal=command)
            slots.update({
                "mode": "static_plan",
                "automationPlan": automation_plan.to_dict(),
                "planId": automation_plan.plan_id,
                "steps": automation_plan.steps,
                "totalSteps": len(automation_plan.steps),
                "goal": automation_plan.goal,
            })

        if outcome == AutomationOutcome.UNCERTAIN:
            state.answer = UNCERTAIN_ANSWER
            state.command_executed = True
            slots["uncertainResult"] = True
        elif "automationPlan" not in slots:
            # No plan to hand over: the service ran the automation itself
            state.answer = response.get("message") or "Done! I completed that automation."
            state.command_executed = True
