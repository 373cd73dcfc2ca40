import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from chapterpay.core.database import SessionLocal
from chapterpay.core.settings import settings
from chapterpay.services.earnings import backfill_ad_amounts


def main() -> int:
    parser = argparse.ArgumentParser(description="Fill in amounts for ad earnings recorded before amounts were tracked.")
    parser.add_argument("--ecpm", type=float, default=None, help="rupees per 1000 ad unlocks (defaults to AD_ECPM_RATE)")
    args = parser.parse_args()
    if args.ecpm is not None and args.ecpm < 0:
        parser.error("--ecpm must be non-negative")

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    db = SessionLocal()
    try:
        result = backfill_ad_amounts(db, args.ecpm, settings.monetization_config())
    finally:
        db.close()
    print(f"processed={result['processed']} updated={result['updated']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
