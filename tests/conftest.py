import itertools

import pytest

from powerlunch.database import Base, make_engine, make_session_factory
from powerlunch.schemas import MatchingResponse, RegistrationCreate
from powerlunch.services.registrations import RegistrationStore

_counter = itertools.count(1)


@pytest.fixture
def store():
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield RegistrationStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def register(store):
    """Create a pending registration; keyword overrides map to RegistrationCreate fields."""

    def _register(conference_id="conf-1", lunch_date="2026-11-04", **overrides):
        n = next(_counter)
        fields = {
            "user_id": f"user-{n}",
            "user_name": f"Attendee {n}",
            "user_email": f"attendee{n}@example.com",
            "lunch_date": lunch_date,
            "topics": ["AI"],
        }
        fields.update(overrides)
        return store.create_registration(conference_id, RegistrationCreate(**fields))

    return _register


class StubStrategy:
    """Deterministic oracle: returns a canned response and records each request."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def propose(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return self.response(request)
        return self.response


def proposal(groups, unmatched=(), notes=None):
    return MatchingResponse.model_validate(
        {
            "groups": [
                {
                    "memberIds": list(ids),
                    "timeSlot": "12:00 PM - 1:00 PM",
                    "matchRationale": "Shared interests",
                    "commonTopics": ["AI"],
                    "suggestedIcebreakers": ["What are you building?"],
                }
                for ids in groups
            ],
            "unmatchedRegistrationIds": list(unmatched),
            "matchingNotes": notes,
        }
    )


@pytest.fixture
def stub_strategy():
    return StubStrategy


@pytest.fixture
def make_proposal():
    return proposal
