import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from powerlunch.database import Base, SessionLocal, engine
from powerlunch.models import Registration
from powerlunch.schemas import RegistrationCreate
from powerlunch.services.registrations import RegistrationStore

SEED_CONFERENCE_ID = os.getenv("SEED_CONFERENCE_ID", "devsummit-2026")


def seed(conference_id: str = SEED_CONFERENCE_ID) -> list[Registration]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    store = RegistrationStore(SessionLocal)
    source = ROOT / "data" / "seed" / "registrations.json"
    rows = json.loads(source.read_text())
    created = [store.create_registration(conference_id, RegistrationCreate.model_validate(row)) for row in rows]
    print(f"Seeded {len(created)} pending registrations under conference {conference_id}.")
    return created


if __name__ == "__main__":
    seed()
