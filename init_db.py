from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from canteen.config import settings
from canteen.db import Base, SessionLocal, engine
from canteen.errors import PersistenceFailure
from canteen.models import TimeSlot
from canteen.seed import seed_defaults


def main() -> int:
    print(f"DATABASE_URL={settings.database_url}")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            seed_defaults(db)
            slot_count = db.scalar(select(func.count(TimeSlot.id)))
    except (SQLAlchemyError, PersistenceFailure) as exc:
        print("DB init FAILED")
        print(exc)
        return 1
    print(f"DB init OK ({slot_count} time slots)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
