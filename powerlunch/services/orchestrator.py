"""Power Lunch matching run: fetch pending -> oracle -> atomic commit.

A run never retries. A failed run leaves every registration pending, so the
caller can simply invoke ``run`` again with the same arguments.
"""

import logging
from dataclasses import dataclass, field

from powerlunch.models import LunchGroup
from powerlunch.schemas import MatchingConstraints
from powerlunch.services.commit import GroupCommitter
from powerlunch.services.errors import OracleOutputInvalid, StoreUnavailable
from powerlunch.services.oracle import MatchingStrategy, build_matching_request, validate_proposals
from powerlunch.services.registrations import RegistrationStore

logger = logging.getLogger(__name__)


@dataclass
class MatchingStats:
    total_registrations: int = 0
    matched_registrations: int = 0
    unmatched_registrations: int = 0
    groups_created: int = 0
    average_group_size: float = 0.0

    def to_dict(self) -> dict:
        return {
            "totalRegistrations": self.total_registrations,
            "matchedRegistrations": self.matched_registrations,
            "unmatchedRegistrations": self.unmatched_registrations,
            "groupsCreated": self.groups_created,
            "averageGroupSize": self.average_group_size,
        }


@dataclass
class MatchingResult:
    success: bool
    conference_id: str
    lunch_date: str
    groups: list[LunchGroup] = field(default_factory=list)
    stats: MatchingStats = field(default_factory=MatchingStats)
    unmatched_registration_ids: list[str] = field(default_factory=list)
    error: str | None = None
    notes: str | None = None


class MatchingOrchestrator:
    def __init__(
        self,
        store: RegistrationStore,
        strategy: MatchingStrategy,
        committer: GroupCommitter | None = None,
        constraints: MatchingConstraints | None = None,
    ):
        self.store = store
        self.strategy = strategy
        self.committer = committer or GroupCommitter(store)
        self.constraints = constraints or MatchingConstraints()

    def _failed(self, conference_id: str, lunch_date: str, step: str, exc: Exception) -> MatchingResult:
        logger.error("Power Lunch matching failed for %s on %s at step %s: %s", conference_id, lunch_date, step, exc)
        return MatchingResult(success=False, conference_id=conference_id, lunch_date=lunch_date, error=str(exc))

    def run(self, conference_id: str, lunch_date: str) -> MatchingResult:
        logger.info("Fetching pending registrations for %s on %s", conference_id, lunch_date)
        try:
            registrations = self.store.fetch_pending(conference_id, lunch_date)
        except StoreUnavailable as exc:
            return self._failed(conference_id, lunch_date, "fetch", exc)

        if not registrations:
            logger.info("No pending registrations for %s on %s", conference_id, lunch_date)
            return MatchingResult(success=True, conference_id=conference_id, lunch_date=lunch_date)

        pool_ids = [r.id for r in registrations]
        nothing_matched = MatchingResult(
            success=True,
            conference_id=conference_id,
            lunch_date=lunch_date,
            stats=MatchingStats(
                total_registrations=len(registrations),
                unmatched_registrations=len(registrations),
            ),
            unmatched_registration_ids=pool_ids,
        )

        logger.info("Delegating %d registrations to the matching oracle", len(registrations))
        request = build_matching_request(conference_id, lunch_date, registrations, self.constraints)
        try:
            output = self.strategy.propose(request)
            if output is not None:
                validate_proposals(output, set(pool_ids), self.constraints)
        except OracleOutputInvalid as exc:
            logger.warning("Discarding oracle output for %s on %s: %s", conference_id, lunch_date, exc)
            return nothing_matched
        except Exception as exc:
            return self._failed(conference_id, lunch_date, "oracle", exc)

        if output is None or not output.groups:
            logger.info("Oracle proposed no groups for %s on %s", conference_id, lunch_date)
            if output is not None:
                nothing_matched.notes = output.matching_notes
            return nothing_matched

        logger.info("Oracle proposed %d groups; committing", len(output.groups))
        try:
            groups = self.committer.commit(conference_id, lunch_date, output)
        except Exception as exc:
            return self._failed(conference_id, lunch_date, "commit", exc)

        matched = sum(g.member_count for g in groups)
        stats = MatchingStats(
            total_registrations=len(registrations),
            matched_registrations=matched,
            unmatched_registrations=len(output.unmatched_registration_ids),
            groups_created=len(groups),
            average_group_size=matched / len(groups) if groups else 0.0,
        )
        logger.info("Matching completed for %s on %s: %s", conference_id, lunch_date, stats.to_dict())
        return MatchingResult(
            success=True,
            conference_id=conference_id,
            lunch_date=lunch_date,
            groups=groups,
            stats=stats,
            unmatched_registration_ids=list(output.unmatched_registration_ids),
            notes=output.matching_notes,
        )
