"""Group formation delegated to an LLM through one structured tool call.

``MatchingStrategy`` is the seam the orchestrator depends on; tests plug in a
deterministic stub, production uses ``ClaudeMatchingStrategy``.
"""

import json
import logging
from typing import Any, Protocol

import anthropic
from pydantic import ValidationError

from powerlunch.models import Registration
from powerlunch.schemas import (
    MatchingConstraints,
    MatchingRequest,
    MatchingResponse,
    RegistrationSummary,
)
from powerlunch.services.errors import NoToolInvocation, OracleOutputInvalid, OracleTransportFailure

logger = logging.getLogger(__name__)

MATCHING_TOOL_NAME = "match_power_lunch_group"

MATCHING_TOOL: dict[str, Any] = {
    "name": MATCHING_TOOL_NAME,
    "description": "Create Power Lunch group assignments based on registration analysis",
    "input_schema": {
        "type": "object",
        "properties": {
            "groups": {
                "type": "array",
                "description": "Array of matched groups",
                "items": {
                    "type": "object",
                    "properties": {
                        "memberIds": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Registration IDs of group members",
                        },
                        "timeSlot": {
                            "type": "string",
                            "description": 'Recommended time slot (e.g., "12:00 PM - 1:00 PM")',
                        },
                        "matchRationale": {
                            "type": "string",
                            "description": "Explanation of why these people were matched",
                        },
                        "commonTopics": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Topics this group has in common",
                        },
                        "suggestedIcebreakers": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Customized icebreaker questions for this group",
                        },
                    },
                    "required": ["memberIds", "timeSlot", "matchRationale", "commonTopics", "suggestedIcebreakers"],
                },
            },
            "unmatchedRegistrationIds": {
                "type": "array",
                "items": {"type": "string"},
                "description": "IDs of registrations that could not be matched",
            },
            "matchingNotes": {
                "type": "string",
                "description": "Optional notes about the matching process",
            },
        },
        "required": ["groups", "unmatchedRegistrationIds"],
    },
}


class MatchingStrategy(Protocol):
    def propose(self, request: MatchingRequest) -> MatchingResponse | None:
        ...


def build_matching_request(
    conference_id: str,
    lunch_date: str,
    registrations: list[Registration],
    constraints: MatchingConstraints | None = None,
) -> MatchingRequest:
    summaries = [
        RegistrationSummary(
            id=r.id,
            user_id=r.user_id,
            user_name=r.user_name,
            company=r.user_company,
            role=r.user_role,
            industry=r.user_industry,
            topics=list(r.topics or []),
            goals=list(r.goals or []),
            experience_level=r.experience_level,
            dietary_restrictions=list(r.dietary_restrictions or []),
            time_slot_preference=r.time_slot_preference,
        )
        for r in registrations
    ]
    return MatchingRequest(
        conference_id=conference_id,
        lunch_date=lunch_date,
        registrations=summaries,
        constraints=constraints or MatchingConstraints(),
    )


def build_prompts(request: MatchingRequest) -> tuple[str, str]:
    c = request.constraints
    factors = []
    if c.prioritize_topic_overlap:
        factors.append("Topic overlap - Group people with shared interests")
    if c.prioritize_diverse_experience:
        factors.append("Experience diversity - Mix experience levels for mentorship opportunities")
    factors += [
        "Industry connections - Create cross-pollination opportunities",
        "Goal alignment - Match people with complementary objectives",
        "Dietary restrictions - Ensure compatible venue options for each group",
    ]
    numbered = "\n".join(f"{i}. {f}" for i, f in enumerate(factors, start=1))

    system_prompt = (
        "You are an expert at creating meaningful professional networking matches.\n"
        "Your goal is to group conference attendees for Power Lunch sessions that maximize networking value.\n\n"
        f"Consider these factors when matching:\n{numbered}\n\n"
        f"Create groups of {c.min_group_size}-{c.max_group_size} people. "
        "Every registration id must appear exactly once, either in one group or in unmatchedRegistrationIds.\n"
        "Each group should have a clear rationale for why these specific people were matched.\n"
        "Suggest 2-3 icebreaker questions customized for each group's common interests."
    )

    registrations = [r.model_dump(by_alias=True, exclude_none=True) for r in request.registrations]
    user_message = (
        f"Please analyze these {len(registrations)} registrations for the {request.lunch_date} Power Lunch "
        f"at conference {request.conference_id} and create optimal groups.\n\n"
        f"Registrations:\n{json.dumps(registrations, indent=2, ensure_ascii=False)}\n\n"
        f"Use the {MATCHING_TOOL_NAME} tool to return the matched groups."
    )
    return system_prompt, user_message


def extract_tool_input(response: Any, tool_name: str = MATCHING_TOOL_NAME) -> dict:
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "tool_use":
            if getattr(block, "name", None) != tool_name:
                raise NoToolInvocation(f"Oracle used unexpected tool {block.name!r}")
            payload = block.input
            if not isinstance(payload, dict):
                raise NoToolInvocation("Oracle tool input was not an object")
            return payload
    raise NoToolInvocation("Oracle response did not invoke the matching tool")


class ClaudeMatchingStrategy:
    def __init__(
        self,
        client: Any = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        api_key: str | None = None,
        timeout: float = 120.0,
    ):
        self._client = client
        self._api_key = api_key or None
        self._timeout = timeout
        self.model = model
        self.max_tokens = max_tokens

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                # max_retries=0: retry policy belongs to whoever triggers the run
                self._client = anthropic.Anthropic(api_key=self._api_key, timeout=self._timeout, max_retries=0)
            except anthropic.AnthropicError as exc:
                raise OracleTransportFailure(f"Matching oracle is not configured: {exc}") from exc
        return self._client

    def propose(self, request: MatchingRequest) -> MatchingResponse | None:
        system_prompt, user_message = build_prompts(request)
        client = self.client
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system_prompt,
                tools=[MATCHING_TOOL],
                tool_choice={"type": "tool", "name": MATCHING_TOOL_NAME},
                messages=[{"role": "user", "content": user_message}],
            )
        except anthropic.APIError as exc:
            raise OracleTransportFailure(f"Matching oracle call failed: {exc}") from exc

        try:
            payload = extract_tool_input(response)
        except NoToolInvocation as exc:
            logger.warning("Oracle returned no tool invocation for %s on %s: %s", request.conference_id, request.lunch_date, exc)
            return None

        try:
            return MatchingResponse.model_validate(payload)
        except ValidationError as exc:
            raise OracleOutputInvalid(f"Matching tool payload failed schema validation: {exc}") from exc


def validate_proposals(
    response: MatchingResponse, pool_ids: set[str], constraints: MatchingConstraints
) -> None:
    """Reject proposals that break group size, membership or uniqueness rules."""
    seen: set[str] = set()
    for index, group in enumerate(response.groups, start=1):
        size = len(group.member_ids)
        if not constraints.min_group_size <= size <= constraints.max_group_size:
            raise OracleOutputInvalid(
                f"Group {index} has {size} members, outside "
                f"[{constraints.min_group_size}, {constraints.max_group_size}]"
            )
        for member_id in group.member_ids:
            if member_id not in pool_ids:
                raise OracleOutputInvalid(f"Group {index} references unknown registration {member_id}")
            if member_id in seen:
                raise OracleOutputInvalid(f"Registration {member_id} was placed in more than one group")
            seen.add(member_id)

    seen_unmatched: set[str] = set()
    for member_id in response.unmatched_registration_ids:
        if member_id not in pool_ids:
            raise OracleOutputInvalid(f"Unmatched list references unknown registration {member_id}")
        if member_id in seen:
            raise OracleOutputInvalid(f"Registration {member_id} is both grouped and unmatched")
        if member_id in seen_unmatched:
            raise OracleOutputInvalid(f"Registration {member_id} is listed as unmatched more than once")
        seen_unmatched.add(member_id)
