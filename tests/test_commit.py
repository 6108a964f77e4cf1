import pytest
from sqlalchemy import update

from powerlunch.models import Registration
from powerlunch.services.commit import GroupCommitter
from powerlunch.services.errors import CommitFailure
from powerlunch.services.orchestrator import MatchingOrchestrator


def _set_status(store, registration_id, status):
    with store.transaction() as session:
        session.execute(update(Registration).where(Registration.id == registration_id).values(status=status))


def test_commit_is_all_or_nothing_when_a_member_is_cancelled_mid_run(store, register, stub_strategy, make_proposal):
    regs = [register() for _ in range(6)]
    ids = [r.id for r in regs]
    output = make_proposal([ids[:3], ids[3:]])

    def cancel_then_propose(request):
        # attendee backs out after the pending fetch but before the commit
        _set_status(store, ids[4], "cancelled")
        return output

    result = MatchingOrchestrator(store, stub_strategy(cancel_then_propose)).run("conf-1", "2026-11-04")

    assert result.success is False
    assert store.list_groups("conf-1") == []
    statuses = {r.id: r.status for r in store.fetch_by_ids("conf-1", ids)}
    assert statuses[ids[4]] == "cancelled"
    assert all(statuses[i] == "pending" for i in ids if i != ids[4])
    assert all(r.group_id is None for r in store.fetch_by_ids("conf-1", ids))


def test_registration_claimed_by_another_run_rejects_commit(store, register, make_proposal):
    regs = [register() for _ in range(3)]
    _set_status(store, regs[1].id, "matched")

    with pytest.raises(CommitFailure):
        GroupCommitter(store).commit("conf-1", "2026-11-04", make_proposal([[r.id for r in regs]]))

    assert store.list_groups("conf-1") == []
    assert store.fetch_by_ids("conf-1", [regs[0].id])[0].status == "pending"


def test_unknown_member_rejects_commit(store, register, make_proposal):
    regs = [register() for _ in range(2)]
    output = make_proposal([[regs[0].id, regs[1].id, "missing-registration"]])

    with pytest.raises(CommitFailure):
        GroupCommitter(store).commit("conf-1", "2026-11-04", output)

    assert len(store.fetch_pending("conf-1", "2026-11-04")) == 2


def test_member_from_another_lunch_date_rejects_commit(store, register, make_proposal):
    same_day = [register() for _ in range(2)]
    other_day = register(lunch_date="2026-11-05")
    output = make_proposal([[same_day[0].id, same_day[1].id, other_day.id]])

    with pytest.raises(CommitFailure):
        GroupCommitter(store).commit("conf-1", "2026-11-04", output)

    assert store.fetch_by_ids("conf-1", [other_day.id])[0].status == "pending"


def test_committed_groups_carry_proposal_details(store, register, make_proposal):
    regs = [register() for _ in range(3)]

    groups = GroupCommitter(store).commit("conf-1", "2026-11-04", make_proposal([[r.id for r in regs]]))

    assert len(groups) == 1
    stored = store.get_group("conf-1", groups[0].id)
    assert stored.time_slot == "12:00 PM - 1:00 PM"
    assert stored.match_rationale == "Shared interests"
    assert stored.common_topics == ["AI"]
    assert stored.suggested_icebreakers == ["What are you building?"]
    assert stored.member_count == 3
    assert stored.lunch_date == "2026-11-04"


def test_member_from_another_conference_rejects_commit(store, register, make_proposal):
    ours = [register() for _ in range(2)]
    theirs = register(conference_id="conf-2")
    output = make_proposal([[ours[0].id, ours[1].id, theirs.id]])

    with pytest.raises(CommitFailure):
        GroupCommitter(store).commit("conf-1", "2026-11-04", output)

    assert store.list_groups("conf-1") == []
    assert store.fetch_pending("conf-2", "2026-11-04")[0].status == "pending"
