import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from powerlunch.models import LunchGroup, Registration, utcnow
from powerlunch.schemas import MatchingResponse
from powerlunch.services.errors import CommitFailure, StoreUnavailable
from powerlunch.services.registrations import RegistrationStore

logger = logging.getLogger(__name__)


class GroupCommitter:
    """Creates groups and flips their members to ``matched`` in one transaction.

    Each member update is conditional on the registration still being pending
    for the same lunch date, so a registration claimed by a concurrent run (or
    cancelled, or deleted, since it was fetched) aborts the whole commit.
    """

    def __init__(self, store: RegistrationStore):
        self.store = store

    def commit(
        self,
        conference_id: str,
        lunch_date: str,
        output: MatchingResponse,
    ) -> list[LunchGroup]:
        now = utcnow()
        created: list[LunchGroup] = []

        try:
            with self.store.transaction() as session:
                for proposal in output.groups:
                    group = LunchGroup(
                        id=self.store.new_group_id(),
                        conference_id=conference_id,
                        lunch_date=lunch_date,
                        time_slot=proposal.time_slot,
                        member_ids=list(proposal.member_ids),
                        member_count=len(proposal.member_ids),
                        match_rationale=proposal.match_rationale,
                        common_topics=list(proposal.common_topics),
                        suggested_icebreakers=list(proposal.suggested_icebreakers),
                        status="scheduled",
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(group)

                    for member_id in proposal.member_ids:
                        result = session.execute(
                            update(Registration)
                            .where(
                                Registration.conference_id == conference_id,
                                Registration.id == member_id,
                                Registration.lunch_date == lunch_date,
                                Registration.status == "pending",
                            )
                            .values(status="matched", group_id=group.id, updated_at=now)
                            .execution_options(synchronize_session=False)
                        )
                        if result.rowcount != 1:
                            raise CommitFailure(
                                f"Registration {member_id} is no longer pending; nothing was committed"
                            )
                    created.append(group)
        except (CommitFailure, StoreUnavailable):
            raise
        except SQLAlchemyError as exc:
            raise CommitFailure(f"Group commit failed: {exc}") from exc

        updated = sum(g.member_count for g in created)
        logger.info(
            "Committed %d groups and %d registration updates for %s on %s",
            len(created),
            updated,
            conference_id,
            lunch_date,
        )
        return created
