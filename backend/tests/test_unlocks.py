import unittest
from datetime import timedelta

from chapterpay.core.errors import ConflictError, NotFoundError, ValidationError
from chapterpay.models.ad_unlock_log import AdUnlockLog
from chapterpay.models.chapter_access import AccessType
from chapterpay.models.coin_transaction import CoinTransaction
from chapterpay.models.unlock_history import UnlockHistory
from chapterpay.models.user import User
from chapterpay.models.writer_earning import WriterEarning
from chapterpay.services import entitlements
from chapterpay.services.earnings_queue import EarningJob, InlineEarningsQueue
from chapterpay.services.monetization_rules import DEFAULT_CONFIG
from chapterpay.services.unlocks import UnlockEngine

from dbsupport import NOW, add_chapters, add_novel, add_user, fixed_clock, make_session_factory, paid_novel, subscribe


class _RecordingQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, job):
        self.jobs.append(job)


class _ExplodingQueue:
    def __init__(self, db):
        self.inner = InlineEarningsQueue(db, DEFAULT_CONFIG)

    def enqueue(self, job):
        # An unknown ad type makes attribution raise inside the queue.
        return self.inner.enqueue(EarningJob.ad(job.novel_id, job.writer_id, job.chapter_id, "banner"))


class UnlockTestCase(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        add_user(self.db, "writer")
        add_user(self.db, "reader", coins=10)
        self.engine = UnlockEngine(self.db, DEFAULT_CONFIG, InlineEarningsQueue(self.db, DEFAULT_CONFIG), clock=fixed_clock)

    def tearDown(self):
        self.db.close()

    def coins(self, user_id="reader"):
        return self.db.query(User.coins).filter(User.id == user_id).scalar()

    def earnings(self):
        return self.db.query(WriterEarning).all()


class TestCoinUnlock(UnlockTestCase):
    def test_subscribed_writer_is_credited(self):
        chapters = paid_novel(self.db, "paid", "writer", coin_cost=4)
        subscribe(self.db, "writer", fee=10)

        result = self.engine.unlock_by_coins("reader", chapters[6].id)

        self.assertEqual(result.coins_spent, 4)
        self.assertEqual(result.remaining_coins, 6)
        self.assertEqual(self.coins(), 6)
        rows = self.earnings()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].earning_type, "coin")
        self.assertEqual(rows[0].count, 1)
        self.assertEqual(rows[0].amount, 180)
        self.assertTrue(rows[0].has_subscription)
        self.assertEqual(rows[0].platform_fee_percentage, 10)
        self.assertEqual(rows[0].coin_price, 200)
        self.assertEqual(rows[0].coins_required_to_unlock, 4)

        history = self.db.query(UnlockHistory).one()
        self.assertEqual((history.unlock_method, history.coins_spent), ("coin", 4))
        tx = self.db.query(CoinTransaction).one()
        self.assertEqual((tx.type, tx.amount, tx.balance_after), ("spent", 4, 6))
        self.assertEqual(entitlements.get_grant(self.db, "reader", chapters[6].id).access_type, AccessType.COIN)

    def test_insufficient_coins_leaves_balance(self):
        chapters = paid_novel(self.db, "paid", "writer", coin_cost=4)
        self.db.query(User).filter(User.id == "reader").update({User.coins: 3})
        self.db.commit()

        with self.assertRaises(ConflictError) as ctx:
            self.engine.unlock_by_coins("reader", chapters[6].id)

        self.assertEqual(ctx.exception.code, "insufficient_coins")
        self.assertEqual(ctx.exception.extra, {"required": 4, "available": 3})
        self.assertEqual(self.coins(), 3)
        self.assertIsNone(entitlements.get_grant(self.db, "reader", chapters[6].id))
        self.assertEqual(self.db.query(CoinTransaction).count(), 0)

    def test_low_free_views_spend_coins_without_earnings(self):
        # 5 x 160 = 800 views across the sample chapters.
        chapters = paid_novel(self.db, "paid", "writer", sample_views=160)

        self.engine.unlock_by_coins("reader", chapters[6].id)

        self.assertEqual(self.coins(), 6)
        self.assertEqual(self.earnings(), [])

    def test_non_subscriber_credited_at_seventy_percent(self):
        chapters = paid_novel(self.db, "paid", "writer", sample_views=200)
        self.engine.unlock_by_coins("reader", chapters[6].id)
        row = self.earnings()[0]
        self.assertEqual(row.amount, 140)
        self.assertFalse(row.has_subscription)
        self.assertEqual(row.total_views_on_free_chapters, 1000)

    def test_chapter_coin_cost_override(self):
        chapters = paid_novel(self.db, "paid", "writer", coin_cost=7)
        result = self.engine.unlock_by_coins("reader", chapters[6].id)
        self.assertEqual(result.coins_spent, 7)
        self.assertEqual(self.coins(), 3)

    def test_free_novel_and_sample_chapter_rejected(self):
        add_novel(self.db, "free", "writer", "free")
        free = add_chapters(self.db, "free", "writer", {6: 0})
        paid = paid_novel(self.db, "paid", "writer")

        with self.assertRaises(ConflictError) as ctx:
            self.engine.unlock_by_coins("reader", free[6].id)
        self.assertEqual(ctx.exception.code, "free_novel")
        with self.assertRaises(ConflictError) as ctx:
            self.engine.unlock_by_coins("reader", paid[5].id)
        self.assertEqual(ctx.exception.code, "free_chapter")
        self.assertEqual(self.coins(), 10)

    def test_unknown_user_and_chapter(self):
        chapters = paid_novel(self.db, "paid", "writer")
        with self.assertRaises(NotFoundError):
            self.engine.unlock_by_coins("ghost", chapters[6].id)
        with self.assertRaises(NotFoundError):
            self.engine.unlock_by_coins("reader", "missing")

    def test_earnings_failure_does_not_fail_unlock(self):
        chapters = paid_novel(self.db, "paid", "writer")
        subscribe(self.db, "writer")
        engine = UnlockEngine(self.db, DEFAULT_CONFIG, _ExplodingQueue(self.db), clock=fixed_clock)

        result = engine.unlock_by_coins("reader", chapters[6].id)

        self.assertEqual(result.remaining_coins, 6)
        self.assertEqual(entitlements.get_grant(self.db, "reader", chapters[6].id).access_type, AccessType.COIN)
        self.assertEqual(self.earnings(), [])

    def test_coin_earning_job_carries_rupee_price(self):
        queue = _RecordingQueue()
        engine = UnlockEngine(self.db, DEFAULT_CONFIG, queue, clock=fixed_clock)
        chapters = paid_novel(self.db, "paid", "writer", sample_views=1000)
        result = engine.unlock_by_coins("reader", chapters[6].id)
        self.assertTrue(result.earning_enqueued)
        self.assertEqual(queue.jobs[0].coin_price_rupees, 2)

    def test_engine_requires_an_earnings_queue(self):
        with self.assertRaises(TypeError):
            UnlockEngine(self.db, DEFAULT_CONFIG)


class TestRepeatUnlocks(UnlockTestCase):
    def setUp(self):
        super().setUp()
        self.chapters = paid_novel(self.db, "paid", "writer")
        subscribe(self.db, "writer")
        self.chapter_id = self.chapters[6].id

    def assertConflict(self, fn, code="already_unlocked"):
        with self.assertRaises(ConflictError) as ctx:
            fn("reader", self.chapter_id)
        self.assertEqual(ctx.exception.code, code)

    def test_coin_then_every_method(self):
        self.engine.unlock_by_coins("reader", self.chapter_id)
        self.assertConflict(self.engine.unlock_by_coins)
        self.assertConflict(self.engine.unlock_by_ads)
        self.assertConflict(self.engine.purchase_chapter)
        self.assertEqual(self.coins(), 6)
        rows = self.earnings()
        self.assertEqual([(r.earning_type, r.count) for r in rows], [("coin", 1)])

    def test_ad_then_every_method(self):
        self.engine.unlock_by_ads("reader", self.chapter_id)
        self.assertConflict(self.engine.unlock_by_ads)
        self.assertConflict(self.engine.unlock_by_coins)
        self.assertConflict(self.engine.purchase_chapter)
        self.assertEqual(self.coins(), 10)
        self.assertEqual([(r.earning_type, r.count) for r in self.earnings()], [("ad", 1)])
        self.assertEqual(self.db.query(AdUnlockLog).count(), 1)

    def test_purchase_then_every_method(self):
        self.engine.purchase_chapter("reader", self.chapter_id)
        self.assertConflict(self.engine.purchase_chapter, code="already_purchased")
        self.assertConflict(self.engine.unlock_by_coins)
        self.assertConflict(self.engine.unlock_by_ads)
        self.assertEqual(self.coins(), 10)
        self.assertEqual(self.earnings(), [])

    def test_sample_read_does_not_block_unlock(self):
        entitlements.grant(self.db, "reader", self.chapter_id, "paid", AccessType.FREE, now=NOW)
        self.engine.unlock_by_coins("reader", self.chapter_id)
        self.assertEqual(entitlements.get_grant(self.db, "reader", self.chapter_id).access_type, AccessType.COIN)


class TestAdUnlocks(UnlockTestCase):
    def setUp(self):
        super().setUp()
        self.chapters = paid_novel(self.db, "paid", "writer", last_chapter=12)

    def test_sixth_ad_unlock_hits_daily_cap(self):
        remaining = []
        for number in range(6, 11):
            remaining.append(self.engine.unlock_by_ads("reader", self.chapters[number].id).remaining_ad_unlocks_today)
        self.assertEqual(remaining, [4, 3, 2, 1, 0])

        with self.assertRaises(ConflictError) as ctx:
            self.engine.unlock_by_ads("reader", self.chapters[11].id)
        self.assertEqual(ctx.exception.code, "daily_ad_limit_reached")
        self.assertEqual(ctx.exception.extra["remainingAdUnlocksToday"], 0)
        self.assertEqual(self.db.query(AdUnlockLog).count(), 5)
        self.assertIsNone(entitlements.get_grant(self.db, "reader", self.chapters[11].id))

    def test_yesterday_does_not_count(self):
        self.db.add(AdUnlockLog(user_id="reader", novel_id="paid", chapter_id=None, unlocked_at=NOW - timedelta(days=1)))
        self.db.commit()
        self.assertEqual(self.engine.ads_used_today("reader", "paid"), 0)
        status = self.engine.ad_unlock_status("reader", "paid")
        self.assertEqual((status.daily_limit, status.used_today, status.remaining_today), (5, 0, 5))

    def test_cap_is_per_novel(self):
        other = paid_novel(self.db, "other", "writer")
        for number in range(6, 11):
            self.engine.unlock_by_ads("reader", self.chapters[number].id)
        self.engine.unlock_by_ads("reader", other[6].id)
        self.assertEqual(self.engine.ad_unlock_status("reader", "other").used_today, 1)

    def test_ad_unlock_history_row(self):
        self.engine.unlock_by_ads("reader", self.chapters[6].id)
        history = self.db.query(UnlockHistory).one()
        self.assertEqual((history.unlock_method, history.coins_spent), ("ad", 0))


class TestRecordAdWatch(UnlockTestCase):
    def setUp(self):
        super().setUp()
        self.queue = _RecordingQueue()
        self.engine = UnlockEngine(self.db, DEFAULT_CONFIG, self.queue, clock=fixed_clock)
        self.chapters = paid_novel(self.db, "paid", "writer")

    def test_novel_level_watch_logs_without_earnings(self):
        result = self.engine.record_ad_watch("reader", "paid")
        self.assertEqual((result.used_today, result.remaining_today), (1, 4))
        self.assertFalse(result.earning_enqueued)
        self.assertEqual(self.db.query(AdUnlockLog).count(), 1)
        self.assertIsNone(self.db.query(UnlockHistory).one().chapter_id)

    def test_locked_chapter_watch_enqueues_earning(self):
        result = self.engine.record_ad_watch("reader", "paid", self.chapters[7].id, "interstitial")
        self.assertTrue(result.earning_enqueued)
        self.assertEqual(self.queue.jobs[0].ad_type, "interstitial")
        self.assertEqual(self.queue.jobs[0].writer_id, "writer")

    def test_sample_chapter_watch_skips_earning(self):
        result = self.engine.record_ad_watch("reader", "paid", self.chapters[2].id)
        self.assertFalse(result.earning_enqueued)
        self.assertEqual(self.queue.jobs, [])

    def test_shares_daily_cap(self):
        for _ in range(5):
            self.engine.record_ad_watch("reader", "paid")
        with self.assertRaises(ConflictError) as ctx:
            self.engine.unlock_by_ads("reader", self.chapters[6].id)
        self.assertEqual(ctx.exception.code, "daily_ad_limit_reached")

    def test_validation(self):
        other = paid_novel(self.db, "other", "writer")
        with self.assertRaises(ValidationError):
            self.engine.record_ad_watch("reader", "paid", other[6].id)
        with self.assertRaises(ValidationError):
            self.engine.record_ad_watch("reader", "paid", None, "popup")
        with self.assertRaises(NotFoundError):
            self.engine.record_ad_watch("reader", "missing")
        self.assertEqual(self.db.query(AdUnlockLog).count(), 0)


class TestUnlockHistory(UnlockTestCase):
    def test_paged_history_with_titles(self):
        chapters = paid_novel(self.db, "paid", "writer")
        self.engine.unlock_by_coins("reader", chapters[6].id)
        self.engine.unlock_by_ads("reader", chapters[7].id)
        self.engine.purchase_chapter("reader", chapters[8].id)

        page = self.engine.unlock_history("reader", "paid", limit=1)
        self.assertEqual(page["total"], 2)
        self.assertEqual(len(page["history"]), 1)
        self.assertEqual(page["history"][0]["novelTitle"], "Novel paid")
        methods = {h["unlockMethod"] for h in self.engine.unlock_history("reader")["history"]}
        self.assertEqual(methods, {"coin", "ad"})


if __name__ == "__main__":
    unittest.main()
