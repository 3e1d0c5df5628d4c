"""
Goal planner for Agentic Copilot.

Turns a natural-language objective (plus an optional snapshot of the current
page) into a Goal with an ordered list of Tasks. Planning is heuristic:
keyword priority, regex intent classification, vocabulary-driven entity
extraction and a static intent -> tool table, narrowed to the tools that are
actually available.
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional

from .types import Goal, GoalPriority, GoalStatus, Task, TaskStatus, WebContext
from .utils import ENTITY_STOP_WORDS, dedupe, parse_hostname
from .web_patterns import Suggestion, WebPatternTable

logger = logging.getLogger("agentic_copilot.planner")


CRITICAL_KEYWORDS = ("urgent", "asap", "immediately", "critical", "emergency")
HIGH_KEYWORDS = ("important", "priority", "deadline", "meeting")
LOW_KEYWORDS = ("later", "when possible")

# Split on commas, semicolons, "then", and "and" only before a navigation verb
UNIT_SPLIT_RE = re.compile(
    r",\s*|;\s*|\s+then\s+|\s+and\s+(?=(?:go|navigate|find|search|filter)\s+)",
    re.IGNORECASE,
)

SEARCH_RE = re.compile(r"\b(search|find)\s+\w+")
GOTO_RE = re.compile(r"(go to|navigate)")
NAVIGATION_RE = re.compile(r"\b(go to|navigate to|visit)\s+\w+")
JOB_FILTER_RE = re.compile(r"\b(find|search for).*\b(job|position|role)\b.*\b(location|in|at)\b")
INTERACTION_RE = re.compile(r"\b(click|select|choose|play)\b")
ANALYSIS_RE = re.compile(r"\b(read|check|analyze|view)\b")
CAREER_RE = re.compile(r"\b(career|job)\s+(page|section)\b")

INTENT_TOOLS: dict[str, list[str]] = {
    "navigation": ["navigateToUrl"],
    "search": ["fillInput", "clickElement"],
    "job_search": ["fillInput", "clickElement", "getPageContent"],
    "job_filtering": ["fillInput", "clickElement", "scrollToElement"],
    "career_navigation": ["clickElement", "getPageContent"],
    "interaction": ["clickElement"],
    "filtering": ["fillInput", "clickElement"],
    "analysis": ["getPageContent"],
    "explore": ["getCurrentTab", "getPageContent"],
}
DEFAULT_INTENT_TOOLS = ["clickElement"]

WEB_AWARE_INTENTS = frozenset({
    "job_search", "job_filtering", "career_navigation",
    "navigation", "search", "interaction",
})

PAGE_CONTEXT_TOOLS = ["getPageContent", "getCurrentTab"]

SUCCESS_CACHE_SIZE = 500


@dataclass
class IntentAnalysis:
    """Intent classification of one actionable unit."""
    intent: str
    entities: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class PlannedAction:
    """An action the planner intends to turn into a Task.

    `tools` is set for synthesized actions that carry their own tool list;
    otherwise tools come from the intent table.
    """
    intent: str
    description: str
    entities: list[str] = field(default_factory=list)
    confidence: float = 0.0
    web_aware: bool = False
    tools: Optional[list[str]] = None


def pattern_key(intent: str, entities: list[str]) -> str:
    """Key of the success-pattern counter."""
    return "_".join([intent, *entities])


class Planner:
    """Creates goals and learns which plans work.

    Two learning tiers exist: this planner keeps a bounded, process-lifetime
    counter of successful intent/entity combinations, while long-lived
    knowledge belongs in the MemoryStore.
    """

    def __init__(
        self,
        tools: Optional[list[Any]] = None,
        web_patterns: Optional[WebPatternTable] = None,
    ):
        """Initialize the planner.

        Args:
            tools: Available tools, as names or objects with a `name` attribute
            web_patterns: Vocabulary table (defaults to the built-in one)
        """
        self.tools = [t if isinstance(t, str) else t.name for t in (tools or [])]
        self.web_patterns = web_patterns or WebPatternTable.default()
        self.success_patterns: OrderedDict[str, int] = OrderedDict()
        self.failure_counts: dict[str, int] = {}
        # task id -> pattern key, for tasks this planner created
        self._task_patterns: dict[str, str] = {}

    # =========================================================================
    # Goal creation
    # =========================================================================

    async def create_goal(
        self,
        objective: str,
        context: Optional[dict[str, Any]] = None,
    ) -> Goal:
        """Plan a goal for the objective.

        Args:
            objective: Free-text user objective
            context: Optional planning context; `web_context` holds the page

        Returns:
            Goal in "executing" state with its tasks
        """
        goal = Goal(
            objective=objective,
            priority=self.determine_priority(objective),
            status=GoalStatus.PLANNING,
            context=context,
        )

        web_context = WebContext.from_context(context)
        goal.sub_tasks = self._decompose(objective, goal.id, web_context)
        goal.status = GoalStatus.EXECUTING

        logger.info(
            f"Planned goal {goal.id[:8]} ({goal.priority.value}) "
            f"with {len(goal.sub_tasks)} task(s)"
        )
        return goal

    def determine_priority(self, objective: str) -> GoalPriority:
        """Keyword priority; the first matching rule wins."""
        lower = objective.lower()
        if any(k in lower for k in CRITICAL_KEYWORDS):
            return GoalPriority.CRITICAL
        if any(k in lower for k in HIGH_KEYWORDS):
            return GoalPriority.HIGH
        if any(k in lower for k in LOW_KEYWORDS):
            return GoalPriority.LOW
        return GoalPriority.MEDIUM

    def _decompose(
        self,
        objective: str,
        goal_id: str,
        web_context: Optional[WebContext],
    ) -> list[Task]:
        actions = self.analyze_objective(objective, web_context)
        tasks = [
            self._create_task(goal_id, action, self._select_tools(action, web_context))
            for action in actions
        ]

        if web_context and web_context.url:
            tasks.insert(0, self._create_context_analysis_task(goal_id, web_context))

        return tasks

    def analyze_objective(
        self,
        objective: str,
        web_context: Optional[WebContext] = None,
    ) -> list[PlannedAction]:
        """Classify every actionable unit and add web-specific actions."""
        actions = []
        for unit in self.split_into_units(objective):
            analysis = self.analyze_intent(unit, web_context)
            if analysis.intent == "unknown":
                continue
            actions.append(PlannedAction(
                intent=analysis.intent,
                description=self.describe(analysis),
                entities=analysis.entities,
                confidence=analysis.confidence,
                web_aware=analysis.intent in WEB_AWARE_INTENTS,
            ))

        if not actions:
            actions.append(self._exploratory_action(objective, web_context))

        if web_context and web_context.url:
            actions.extend(self._web_specific_actions(objective, web_context))

        return actions

    @staticmethod
    def split_into_units(objective: str) -> list[str]:
        """Split an objective into actionable units (fragments < 4 chars dropped)."""
        parts = [p.strip() for p in UNIT_SPLIT_RE.split(objective)]
        parts = [p for p in parts if len(p) > 3]
        return parts or [objective]

    def analyze_intent(
        self,
        text: str,
        web_context: Optional[WebContext] = None,
    ) -> IntentAnalysis:
        """Classify one unit with ordered rules; the first match wins."""
        if not text or not isinstance(text, str):
            return IntentAnalysis(intent="unknown")

        lower = text.lower()
        entities = self.extract_entities(text)

        on_job_site = bool(web_context) and (
            "career" in web_context.url or "job" in web_context.title.lower()
        )

        if SEARCH_RE.search(lower) and not GOTO_RE.search(lower):
            intent, confidence = ("job_search", 0.95) if on_job_site else ("search", 0.9)
        elif NAVIGATION_RE.search(lower):
            intent, confidence = "navigation", 0.9
        elif JOB_FILTER_RE.search(lower):
            intent, confidence = "job_filtering", 0.9
        elif INTERACTION_RE.search(lower):
            intent, confidence = "interaction", 0.7
        elif ANALYSIS_RE.search(lower):
            intent, confidence = "analysis", 0.6
        elif CAREER_RE.search(lower):
            intent, confidence = "career_navigation", 0.85
        else:
            intent, confidence = "unknown", 0.0

        if pattern_key(intent, entities) in self.success_patterns:
            confidence = min(1.0, confidence + 0.1)

        return IntentAnalysis(intent=intent, entities=entities, confidence=confidence)

    def extract_entities(self, text: str) -> list[str]:
        """Known companies, job titles and locations; else significant words.

        At most five entities are returned.
        """
        if not text or not isinstance(text, str):
            return []

        vocabulary = self.web_patterns.vocabulary
        entities: list[str] = []
        used: set[str] = set()

        for found in (
            vocabulary.find_companies(text)
            + vocabulary.find_job_titles(text)
            + vocabulary.find_locations(text)
        ):
            key = re.sub(r"\s+", " ", found.strip().lower())
            if key not in used:
                entities.append(found.strip())
                used.add(key)

        if not entities:
            for raw in text.split():
                word = re.sub(r"[^\w\s]", "", raw).strip()
                key = word.lower()
                if len(word) > 3 and key not in ENTITY_STOP_WORDS and key not in used:
                    entities.append(word)
                    used.add(key)

        return entities[:5]

    @staticmethod
    def describe(analysis: IntentAnalysis) -> str:
        """Human-readable task description for an analysed unit."""
        entities = analysis.entities
        primary = entities[0] if entities else "target"
        templates = {
            "navigation": f"Navigate to {primary}",
            "search": f"Search for {' '.join(entities)}",
            "job_search": f"Search jobs for {' '.join(entities)}",
            "job_filtering": f"Filter jobs by {' and '.join(entities)}",
            "career_navigation": f"Open the careers section for {primary}",
            "interaction": f"Interact with {primary}",
            "analysis": f"Analyze {primary}",
        }
        return templates.get(analysis.intent, f"Execute action on {primary}")

    def _exploratory_action(
        self,
        objective: str,
        web_context: Optional[WebContext],
    ) -> PlannedAction:
        if web_context and web_context.url:
            description = (
                f"Explore current page ({web_context.title or web_context.url}) "
                f"to understand: {objective}"
            )
            tools = list(PAGE_CONTEXT_TOOLS)
        else:
            description = f"Analyze and understand the objective: {objective}"
            tools = ["getCurrentTab", "getPageContent", "searchGoogle"]

        return PlannedAction(
            intent="web_explore",
            description=description,
            entities=[objective],
            confidence=0.7,
            web_aware=True,
            tools=tools,
        )

    def _web_specific_actions(self, objective: str, web_context: WebContext) -> list[PlannedAction]:
        """Heuristic job-site actions; appended without de-duplication."""
        actions: list[PlannedAction] = []
        lower = objective.lower()
        url = web_context.url.lower()
        title = web_context.title.lower()
        vocabulary = self.web_patterns.vocabulary

        if "job" not in lower and "career" not in lower:
            return actions

        if "career" not in url and "job" not in title:
            actions.append(PlannedAction(
                intent="career_navigation",
                description="Navigate to careers/jobs section",
                entities=self.web_patterns.get("job_search"),
                confidence=0.8,
                web_aware=True,
                tools=["clickElement", "getPageContent"],
            ))

        locations = vocabulary.find_locations(objective)
        if locations or "location" in lower:
            place = locations[0].title() if locations else ""
            description = f"Filter jobs by {place} location" if place else "Filter jobs by location"
            actions.append(PlannedAction(
                intent="job_filtering",
                description=description,
                entities=[place, "location"] if place else ["location"],
                confidence=0.85,
                web_aware=True,
                tools=["fillInput", "clickElement", "waitForElement"],
            ))

        if any(trigger in lower for trigger in vocabulary.role_triggers):
            titles = vocabulary.find_job_titles(objective)
            role = titles[0].lower() if titles else vocabulary.default_role
            actions.append(PlannedAction(
                intent="job_filtering",
                description=f"Filter for {role} positions",
                entities=dedupe([role, "developer"]),
                confidence=0.9,
                web_aware=True,
                tools=["fillInput", "clickElement", "waitForElement"],
            ))

        return actions

    def _select_tools(self, action: PlannedAction, web_context: Optional[WebContext]) -> list[str]:
        """Intent (or explicit) tools narrowed to available ones, plus extras."""
        if action.tools is not None:
            candidates = list(action.tools)
        else:
            candidates = list(INTENT_TOOLS.get(action.intent, DEFAULT_INTENT_TOOLS))
            for entity in action.entities:
                entity_lower = entity.lower()
                if "scroll" in entity_lower:
                    candidates.append("scrollToElement")
                if "form" in entity_lower:
                    candidates.append("fillInput")

        available = set(self.tools)
        selected = [tool for tool in dedupe(candidates) if tool in available]

        if web_context and web_context.url:
            if "searchGoogle" in available and action.intent == "search":
                selected.insert(0, "searchGoogle")
            if "waitForElement" in available and "job" in action.intent:
                selected.append("waitForElement")

        return dedupe(selected)

    def _create_task(self, goal_id: str, action: PlannedAction, tools: list[str]) -> Task:
        task = Task(
            goal_id=goal_id,
            description=action.description,
            status=TaskStatus.PENDING,
            tool_calls=tools,
            # Confident plans get fewer retries
            max_retries=2 if action.confidence > 0.8 else 3,
            metadata={
                "intent": action.intent,
                "entities": list(action.entities),
                "confidence": action.confidence,
                "web_aware": action.web_aware,
            },
        )
        self._task_patterns[task.id] = pattern_key(action.intent, action.entities)
        return task

    def _create_context_analysis_task(self, goal_id: str, web_context: WebContext) -> Task:
        return Task(
            goal_id=goal_id,
            description=f"Analyze current page context: {web_context.title or web_context.url}",
            status=TaskStatus.PENDING,
            tool_calls=list(PAGE_CONTEXT_TOOLS),
            max_retries=2,
            metadata={
                "intent": "context_analysis",
                "web_context": web_context.to_dict(),
                "priority": "high",
            },
        )

    # =========================================================================
    # Progress and learning
    # =========================================================================

    @staticmethod
    def calculate_progress(goal: Goal) -> int:
        """round(100 * completed / total); 0 for a goal without tasks."""
        return goal.calculate_progress()

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus | str,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        """Feed a task outcome into the success-pattern counter.

        The Task object itself is not touched; the orchestrator owns it.
        """
        status = TaskStatus(status)
        logger.debug(f"Task {task_id[:8]} updated to {status.value}")

        key = self._task_patterns.get(task_id)
        if key is None and isinstance(result, dict) and "intent" in result and "entities" in result:
            key = pattern_key(result["intent"], list(result["entities"]))

        if status == TaskStatus.COMPLETED and key is not None:
            self._record_success(key)
        elif status == TaskStatus.FAILED and error:
            if key is not None:
                self.failure_counts[key] = self.failure_counts.get(key, 0) + 1
            logger.debug(f"Learning from failure: {error}")

    def _record_success(self, key: str) -> None:
        self.success_patterns[key] = self.success_patterns.get(key, 0) + 1
        self.success_patterns.move_to_end(key)
        while len(self.success_patterns) > SUCCESS_CACHE_SIZE:
            self.success_patterns.popitem(last=False)

    # =========================================================================
    # Web adaptation
    # =========================================================================

    def adapt_planning_to_web_context(self, web_context: WebContext | dict[str, Any]) -> list[str]:
        """Learn site vocabularies for the page's hostname.

        Returns:
            Names of the patterns that were learned
        """
        if isinstance(web_context, dict):
            web_context = WebContext.from_dict(web_context)
        if not web_context.url or not web_context.title:
            return []

        hostname = parse_hostname(web_context.url)
        learned = []
        for profile in self.web_patterns.profiles_for_host(hostname):
            self.web_patterns.learn(profile.pattern_name, profile.keywords)
            learned.append(profile.pattern_name)
        return learned

    def get_adaptive_task_suggestions(
        self,
        objective: str,
        context: Optional[dict[str, Any]] = None,
    ) -> list[Suggestion]:
        """Site-specific suggestions, most confident first."""
        web_context = WebContext.from_context(context)
        if web_context is None or not web_context.url:
            return []

        hostname = parse_hostname(web_context.url)
        lower = objective.lower()
        suggestions = [
            Suggestion(rule.description, rule.confidence, list(rule.tools))
            for profile in self.web_patterns.profiles_for_host(hostname)
            for rule in profile.suggestions
            if rule.matches(lower)
        ]
        return sorted(suggestions, key=lambda s: s.confidence, reverse=True)
