from powerlunch.models import Registration
from powerlunch.schemas import NetworkingToolInput
from powerlunch.services.registrations import RegistrationStore

MAX_SUGGESTIONS = 10


def _normalize(values) -> set[str]:
    return {v.strip().lower() for v in values or [] if v and v.strip()}


def _interest_overlap(interests: set[str], candidate: Registration) -> list[str]:
    pool = _normalize(candidate.topics) | _normalize(candidate.linkedin_skills)
    return sorted(interests & pool)


def _goal_alignment(goals: set[str], candidate: Registration) -> float:
    shared = goals & _normalize(candidate.goals)
    return min(20.0, 10.0 * len(shared))


def _role_relevance(role: str | None, track: str | None, candidate: Registration) -> float:
    score = 0.0
    blob = " ".join(
        x for x in [candidate.user_role, candidate.user_industry, candidate.linkedin_headline] if x
    ).lower()
    if role and candidate.user_role and role.strip().lower() == candidate.user_role.strip().lower():
        score += 5.0
    if track and track.strip().lower() in blob:
        score += 10.0
    return score


def _reasons(candidate: Registration, shared: list[str], goal_score: float, role_score: float) -> list[str]:
    reasons = []
    if shared:
        reasons.append(f"Shares your interest in {', '.join(shared[:3])}.")
    if goal_score > 0:
        reasons.append(f"{candidate.user_name} is pursuing similar networking goals.")
    if role_score > 0:
        reasons.append(f"Works close to your focus area as {candidate.user_role or 'a fellow attendee'}.")
    if not reasons:
        reasons.append("Attending the same conference lunches as you.")
    return reasons[:3]


def suggest_connections(
    store: RegistrationStore, conference_id: str, tool_input: NetworkingToolInput, limit: int = 5
) -> list[dict]:
    """Rank the conference's active registrations against a generate_networking_suggestions call."""
    interests = _normalize(tool_input.user_interests)
    goals = _normalize(tool_input.networking_goals)
    limit = max(1, min(MAX_SUGGESTIONS, limit))

    scored = []
    seen_users = set()
    for candidate in store.fetch_active(conference_id):
        if candidate.user_id in seen_users:
            continue
        seen_users.add(candidate.user_id)

        shared = _interest_overlap(interests, candidate)
        interest_score = 60.0 * len(shared) / len(interests)
        goal_score = _goal_alignment(goals, candidate)
        role_score = _role_relevance(tool_input.user_role, tool_input.conference_track, candidate)
        score = min(100.0, interest_score + goal_score + role_score)
        if score <= 0:
            continue
        scored.append((candidate, score, shared, goal_score, role_score))

    scored.sort(key=lambda x: x[1], reverse=True)
    suggestions = []
    for candidate, score, shared, goal_score, role_score in scored[:limit]:
        topic = shared[0] if shared else (candidate.topics or ["the conference"])[0]
        suggestions.append(
            {
                "id": candidate.id,
                "name": candidate.user_name,
                "role": candidate.user_role or "",
                "company": candidate.user_company or "",
                "matchScore": round(score),
                "matchReasons": _reasons(candidate, shared, goal_score, role_score),
                "sharedInterests": shared,
                "suggestedIcebreaker": f"Ask what they are working on around {topic}.",
                "linkedInUrl": candidate.user_linkedin_url,
            }
        )
    return suggestions
