import asyncio
import unittest
from decimal import Decimal

from fastapi import BackgroundTasks

from chapterpay.api.deps import get_earnings_queue
from chapterpay.core.errors import ValidationError
from chapterpay.core.settings import settings
from chapterpay.models.writer_earning import WriterEarning
from chapterpay.services.earnings import EarningsAttributor, backfill_ad_amounts
from chapterpay.services.earnings_queue import (
    BackgroundEarningsQueue,
    EarningJob,
    InlineEarningsQueue,
    run_earning_job,
)
from chapterpay.services.monetization_rules import DEFAULT_CONFIG, MonetizationConfig

from dbsupport import add_chapters, add_novel, add_user, make_session_factory, paid_novel, subscribe


class TestEarningsAttributor(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        add_user(self.db, "writer")
        self.chapters = paid_novel(self.db, "paid", "writer", sample_views=200)
        self.attributor = EarningsAttributor(self.db)

    def tearDown(self):
        self.db.close()

    def rows(self):
        return self.db.query(WriterEarning).order_by(WriterEarning.earning_type.asc()).all()

    def test_coin_earnings_accumulate_in_one_row(self):
        ch = self.chapters[6].id
        first = self.attributor.record_coin_earning("paid", "writer", ch, Decimal("2"))
        self.assertTrue(first.recorded)
        self.assertEqual(first.writer_amount, 140)

        subscribe(self.db, "writer", fee=10)
        second = self.attributor.record_coin_earning("paid", "writer", ch, Decimal("2"))
        self.assertEqual(second.writer_amount, 180)

        rows = self.rows()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].amount, 320)
        self.assertEqual(rows[0].count, 2)
        # Snapshot reflects the latest unlock.
        self.assertTrue(rows[0].has_subscription)
        self.assertEqual(rows[0].writer_percentage_earned, 90)

    def test_ad_and_interstitial_are_separate_aggregates(self):
        ch = self.chapters[7].id
        self.attributor.record_ad_earning("paid", "writer", ch)
        self.attributor.record_ad_earning("paid", "writer", ch, "ad")
        self.attributor.record_ad_earning("paid", "writer", ch, "Interstitial")
        rows = self.rows()
        self.assertEqual([(r.earning_type, r.count, r.amount) for r in rows], [("ad", 2, 6), ("interstitial", 1, 3)])
        self.assertIsNone(rows[0].coin_price)

    def test_sample_chapter_never_recorded(self):
        subscribe(self.db, "writer")
        outcome = self.attributor.record_coin_earning("paid", "writer", self.chapters[5].id, Decimal("2"))
        self.assertFalse(outcome.recorded)
        self.assertEqual(outcome.reason, "views_requirement_not_met")
        self.assertEqual(self.rows(), [])

    def test_free_novel_and_missing_rows_skipped(self):
        add_novel(self.db, "free", "writer", "free")
        free = add_chapters(self.db, "free", "writer", {6: 5000})
        self.assertEqual(self.attributor.record_ad_earning("free", "writer", free[6].id).reason, "free_novel")
        self.assertEqual(self.attributor.record_ad_earning("paid", "writer", "missing").reason, "not_found")
        self.assertEqual(self.rows(), [])

    def test_expired_subscription_counts_as_none(self):
        subscribe(self.db, "writer", days=-1)
        outcome = self.attributor.record_coin_earning("paid", "writer", self.chapters[6].id, Decimal("2"))
        self.assertFalse(outcome.has_subscription)
        self.assertEqual(outcome.platform_fee_percentage, 30)

    def test_unknown_ad_type(self):
        with self.assertRaises(ValidationError):
            self.attributor.record_ad_earning("paid", "writer", self.chapters[6].id, "banner")

    def test_config_drives_rates(self):
        cfg = MonetizationConfig(ad_ecpm_rate=100.0, non_subscriber_platform_fee=50)
        outcome = EarningsAttributor(self.db, cfg).record_ad_earning("paid", "writer", self.chapters[6].id)
        self.assertEqual(outcome.writer_amount, 5)


class TestEarningsQueue(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        add_user(self.db, "writer")
        self.chapters = paid_novel(self.db, "paid", "writer", sample_views=200)

    def tearDown(self):
        self.db.close()

    def test_inline_queue_runs_job(self):
        queue = InlineEarningsQueue(self.db, DEFAULT_CONFIG)
        outcome = queue.enqueue(EarningJob.coin("paid", "writer", self.chapters[6].id, Decimal("2")))
        self.assertTrue(outcome.recorded)

    def test_failures_are_swallowed(self):
        with self.assertLogs("chapterpay.services.earnings_queue", level="ERROR"):
            outcome = run_earning_job(self.db, EarningJob.ad("paid", "writer", self.chapters[6].id, "banner"))
        self.assertIsNone(outcome)
        self.assertEqual(self.db.query(WriterEarning).count(), 0)


class TestBackgroundEarningsQueue(unittest.TestCase):
    def setUp(self):
        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        add_user(self.db, "writer")
        self.chapters = paid_novel(self.db, "paid", "writer", sample_views=200)

    def tearDown(self):
        self.db.close()

    def test_job_runs_after_response_in_its_own_session(self):
        tasks = BackgroundTasks()
        queue = BackgroundEarningsQueue(tasks, self.SessionLocal, DEFAULT_CONFIG)
        self.assertIsNone(queue.enqueue(EarningJob.coin("paid", "writer", self.chapters[6].id, Decimal("2"))))
        self.assertEqual(self.db.query(WriterEarning).count(), 0)

        asyncio.run(tasks())

        rows = self.db.query(WriterEarning).all()
        self.assertEqual([(r.earning_type, r.count, r.amount) for r in rows], [("coin", 1, 140)])

    def test_failing_job_is_logged_and_swallowed(self):
        tasks = BackgroundTasks()
        queue = BackgroundEarningsQueue(tasks, self.SessionLocal, DEFAULT_CONFIG)
        queue.enqueue(EarningJob.ad("paid", "writer", self.chapters[6].id, "banner"))
        queue.enqueue(EarningJob.ad("paid", "writer", self.chapters[7].id))

        with self.assertLogs("chapterpay.services.earnings_queue", level="ERROR"):
            asyncio.run(tasks())

        rows = self.db.query(WriterEarning).all()
        self.assertEqual([(r.chapter_id, r.earning_type) for r in rows], [(self.chapters[7].id, "ad")])

    def test_dispatch_setting_selects_queue(self):
        saved = settings.earnings_dispatch
        try:
            settings.earnings_dispatch = "background"
            queue = get_earnings_queue(BackgroundTasks(), self.db, DEFAULT_CONFIG)
            self.assertIsInstance(queue, BackgroundEarningsQueue)
            settings.earnings_dispatch = "inline"
            queue = get_earnings_queue(BackgroundTasks(), self.db, DEFAULT_CONFIG)
            self.assertIsInstance(queue, InlineEarningsQueue)
        finally:
            settings.earnings_dispatch = saved


class TestBackfill(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()

    def tearDown(self):
        self.db.close()

    def _row(self, **kw):
        values = {
            "writer_id": "w",
            "novel_id": "n",
            "chapter_id": "c",
            "earning_type": "ad",
            "amount": 0,
            "count": 1000,
            "writer_percentage_earned": 70,
        }
        values.update(kw)
        row = WriterEarning(**values)
        self.db.add(row)
        self.db.commit()
        return row

    def test_fills_zero_amounts_once(self):
        self._row()
        self._row(chapter_id="c2", amount=55)
        self._row(chapter_id="c3", earning_type="coin", count=3)

        result = backfill_ad_amounts(self.db, 40)
        self.assertEqual(result, {"processed": 1, "updated": 1})
        amounts = {r.chapter_id: r.amount for r in self.db.query(WriterEarning).all()}
        self.assertEqual(amounts, {"c": 2800, "c2": 55, "c3": 0})

        self.assertEqual(backfill_ad_amounts(self.db, 40), {"processed": 0, "updated": 0})


if __name__ == "__main__":
    unittest.main()
