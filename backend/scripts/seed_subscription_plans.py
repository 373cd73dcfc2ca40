import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from chapterpay.core.database import Base, SessionLocal, engine
from chapterpay.core.settings import settings
from chapterpay.models import subscription  # noqa: F401
from chapterpay.services.subscriptions import seed_default_plans


def main() -> int:
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = seed_default_plans(db)
        names = [p.name for p in created]
    finally:
        db.close()
    print(f"created={len(names)} plans={','.join(names) or '-'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
