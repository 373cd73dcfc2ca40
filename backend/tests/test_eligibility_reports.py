import unittest
from decimal import Decimal

from chapterpay.core.errors import AuthorizationError, NotFoundError, ValidationError
from chapterpay.models.chapter import Chapter
from chapterpay.models.coin_transaction import CoinTransaction
from chapterpay.models.subscription import SubscriptionPlan
from chapterpay.services import eligibility, reports, wallet
from chapterpay.services.earnings import EarningsAttributor
from chapterpay.services.subscriptions import seed_default_plans

from dbsupport import add_chapters, add_novel, add_user, make_session_factory, paid_novel, subscribe


class TestIsMonetized(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        add_user(self.db, "writer")

    def tearDown(self):
        self.db.close()

    def test_every_sample_chapter_needs_threshold(self):
        paid_novel(self.db, "ok", "writer", sample_views=1000)
        self.assertTrue(eligibility.is_monetized(self.db, "ok"))

        add_novel(self.db, "low", "writer")
        add_chapters(self.db, "low", "writer", {1: 5000, 2: 5000, 3: 5000, 4: 5000, 5: 999, 6: 0})
        self.assertFalse(eligibility.is_monetized(self.db, "low"))

        add_novel(self.db, "gap", "writer")
        add_chapters(self.db, "gap", "writer", {1: 9000, 2: 9000, 4: 9000, 5: 9000, 6: 0})
        self.assertFalse(eligibility.is_monetized(self.db, "gap"))

    def test_duplicated_sample_number_cannot_pass_on_combined_views(self):
        add_novel(self.db, "dup", "writer")
        add_chapters(self.db, "dup", "writer", {1: 1000, 2: 1000, 3: 600, 4: 1000, 5: 1000})
        self.db.add(
            Chapter(
                id="dup-ch3-copy",
                novel_id="dup",
                author_id="writer",
                title="Chapter 3",
                chapter_number=3,
                view_count=600,
                status="published",
            )
        )
        self.db.commit()
        self.assertFalse(eligibility.is_monetized(self.db, "dup"))

    def test_draft_sample_chapter_blocks_monetization(self):
        chapters = paid_novel(self.db, "draft", "writer", sample_views=1000)
        chapters[3].status = "draft"
        self.db.commit()
        self.assertFalse(eligibility.is_monetized(self.db, "draft"))

        report = eligibility.check_monetization_eligibility(self.db, "writer", "draft")
        self.assertFalse(report["isMonetized"])
        self.assertFalse(report["eligible"])
        self.assertIn("Chapter 3: not published", report["issues"])

    def test_subscriber_always_monetized(self):
        add_novel(self.db, "new", "writer")
        subscribe(self.db, "writer")
        self.assertTrue(eligibility.is_monetized(self.db, "new"))

    def test_free_novel_never_monetized(self):
        add_novel(self.db, "free", "writer", "free")
        add_chapters(self.db, "free", "writer", {n: 5000 for n in range(1, 7)})
        subscribe(self.db, "writer")
        self.assertFalse(eligibility.is_monetized(self.db, "free"))

    def test_eligibility_report(self):
        add_user(self.db, "reader")
        add_novel(self.db, "n", "writer")
        add_chapters(self.db, "n", "writer", {1: 1200, 2: 800, 3: 1000})
        report = eligibility.check_monetization_eligibility(self.db, "writer", "n")
        self.assertFalse(report["eligible"])
        self.assertFalse(report["isMonetized"])
        self.assertFalse(report["hasMinChapters"])
        self.assertEqual(report["totalChapters"], 3)
        self.assertEqual(report["freeViewsTotal"], 3000)
        self.assertEqual(report["platformFeePercentage"], 30)
        self.assertIn("Need 3 more chapters (minimum 6 required)", report["issues"])
        self.assertIn("Chapter 2: 800/1000 views", report["issues"])
        self.assertIn("Chapter 4: not published", report["issues"])
        self.assertEqual([c["eligible"] for c in report["freeChapters"]], [True, False, True])
        with self.assertRaises(AuthorizationError):
            eligibility.check_monetization_eligibility(self.db, "reader", "n")


class TestReports(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        add_user(self.db, "writer")
        add_user(self.db, "other")
        self.chapters = paid_novel(self.db, "paid", "writer", sample_views=200)
        attributor = EarningsAttributor(self.db)
        attributor.record_coin_earning("paid", "writer", self.chapters[6].id, Decimal("2"))
        attributor.record_ad_earning("paid", "writer", self.chapters[6].id)
        attributor.record_ad_earning("paid", "writer", self.chapters[7].id, "interstitial")

    def tearDown(self):
        self.db.close()

    def test_writer_earnings(self):
        data = reports.writer_earnings(self.db, "writer")
        self.assertEqual(data["byType"], {"coin": 140, "ad": 3, "interstitial": 3})
        self.assertEqual(data["totalEarnings"], 146)
        self.assertEqual(data["totalEarningsRupees"], 1.46)
        self.assertEqual(data["byNovel"][0]["total"], 146)
        self.assertEqual(len(data["allEarnings"]), 3)
        self.assertEqual(data["adEstimate"]["totalAdUnlocks"], 2)

    def test_novel_earnings_author_only(self):
        data = reports.novel_earnings(self.db, "writer", "paid")
        by_chapter = {c["chapterNumber"]: c for c in data["byChapter"]}
        self.assertEqual(by_chapter[6]["total"], 143)
        self.assertEqual(by_chapter[7]["interstitial"], 3)
        with self.assertRaises(AuthorizationError):
            reports.novel_earnings(self.db, "other", "paid")

    def test_chapter_earnings_sums_all_types(self):
        data = reports.chapter_earnings(self.db, "writer", "paid", self.chapters[6].id)
        self.assertTrue(data["hasEarnings"])
        self.assertEqual(data["earnings"]["coin"], 140)
        self.assertEqual(data["earnings"]["ad"], 3)
        self.assertEqual(data["earnings"]["total"], 143)
        self.assertEqual(data["counts"], {"coinUnlocks": 1, "adUnlocks": 1, "interstitialImpressions": 0})

        empty = reports.chapter_earnings(self.db, "writer", "paid", self.chapters[9].id)
        self.assertFalse(empty["hasEarnings"])
        with self.assertRaises(NotFoundError):
            reports.chapter_earnings(self.db, "writer", "other-novel", self.chapters[9].id)

    def test_ad_stats_with_ecpm_override(self):
        data = reports.ad_unlock_stats(self.db, "writer", "paid", ecpm_rate=reports.parse_ecpm_rate("250"))
        self.assertEqual(data["totalAdUnlocks"], 2)
        self.assertEqual(data["ecpmRate"], 250.0)
        self.assertEqual(data["estimatedEarnings"], 0.5)
        self.assertEqual(data["writerEarnings"], 0.35)
        self.assertEqual(data["recordedWriterEarnings"], 6)

    def test_parse_ecpm_rate(self):
        self.assertEqual(reports.parse_ecpm_rate(None), 40.0)
        self.assertEqual(reports.parse_ecpm_rate(""), 40.0)
        for bad in ("-1", "abc", "nan"):
            with self.assertRaises(ValidationError):
                reports.parse_ecpm_rate(bad)


class TestWallet(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        add_user(self.db, "reader", coins=2)

    def tearDown(self):
        self.db.close()

    def test_credit_and_history(self):
        entry = wallet.credit_coins(self.db, "reader", 8, "Promo")
        self.assertEqual(entry.balance_after, 10)
        self.assertEqual(wallet.coin_balance(self.db, "reader"), 10)
        history = wallet.coin_history(self.db, "reader")
        self.assertEqual(history["total"], 1)
        self.assertEqual(history["transactions"][0]["type"], "earned")

    def test_rejects_bad_input(self):
        with self.assertRaises(ValidationError):
            wallet.credit_coins(self.db, "reader", 0, "Promo")
        with self.assertRaises(ValidationError):
            wallet.credit_coins(self.db, "reader", 5, " ")
        with self.assertRaises(NotFoundError):
            wallet.credit_coins(self.db, "ghost", 5, "Promo")
        self.assertEqual(self.db.query(CoinTransaction).count(), 0)


class TestPlanSeeding(unittest.TestCase):
    def test_seed_is_idempotent(self):
        db = make_session_factory()()
        try:
            self.assertEqual([p.name for p in seed_default_plans(db)], ["premium"])
            self.assertEqual(seed_default_plans(db), [])
            plan = db.query(SubscriptionPlan).one()
            self.assertEqual((plan.duration_days, plan.platform_fee_percentage), (30, 10))
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()
