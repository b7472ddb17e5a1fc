"""
Unit tests for the conversation state machine
Each test feeds a snapshot to transition() and inspects the declared outcome
"""
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import unittest
from conversation import (
    ConversationState as S, STATE_HANDLERS, ArchiveLedgerDay, ClearScratch,
    CommitLedger, RecordScratch, UpdateLedgerCell, parse_state, transition
)
from ledger import LedgerRow, COLUMN_ORDER, COLUMN_REMAINING
from scratch import ScratchEntry, STATUS_FILLED, STATUS_PENDING

USER = "whatsapp:+819000000000"
DATE = "2024/05/01"
CATALOG = ["キャベツ", "プリン", "カレー"]


def filled(*pairs):
    return {
        product: ScratchEntry(USER, DATE, product, quantity, STATUS_FILLED)
        for product, quantity in pairs
    }


def ledger_rows(*products):
    return [
        LedgerRow(index + 2, DATE, "水", product, "5", "10", USER, "土")
        for index, product in enumerate(products)
    ]


def step(state, text, scratch=None, ledger=()):
    return transition(state, text, USER, DATE, scratch or {}, ledger)


class TestDispatch(unittest.TestCase):

    def test_every_state_has_a_handler(self):
        self.assertEqual(set(STATE_HANDLERS), set(S))

    def test_parse_state(self):
        self.assertIs(parse_state(None), S.IDLE)
        self.assertIs(parse_state(""), S.IDLE)
        self.assertIs(parse_state("入力中"), S.COLLECTING)
        self.assertIs(parse_state("unknown"), S.IDLE)


class TestCancel(unittest.TestCase):

    def test_cancel_from_every_state(self):
        for state in S:
            result = step(state, "キャンセル", filled(("キャベツ", 1)))
            self.assertIs(result.state, S.IDLE, state)
            self.assertEqual(result.effects, (ClearScratch(),))
            self.assertEqual(result.reply, "入力を中止しました。")
            self.assertEqual(result.business_date, "")

    def test_cancel_is_idempotent(self):
        first = step(S.COLLECTING, "キャンセル")
        second = step(first.state, "キャンセル")
        self.assertEqual(first, second)


class TestIdle(unittest.TestCase):

    def test_menu_reminder(self):
        result = step(S.IDLE, "こんにちは")
        self.assertIs(result.state, S.IDLE)
        self.assertIn("「入力」「訂正」", result.reply)
        self.assertEqual(result.effects, ())

    def test_start_keyword(self):
        result = step(S.IDLE, "入力")
        self.assertIs(result.state, S.CONFIRM_START)
        self.assertIn(DATE, result.reply)
        self.assertEqual(result.business_date, DATE)

    def test_correction_requires_complete_entry(self):
        result = step(S.IDLE, "訂正", ledger=ledger_rows("キャベツ", "プリン"))
        self.assertIs(result.state, S.IDLE)
        self.assertIn("訂正できません", result.reply)

    def test_correction_start(self):
        result = step(S.IDLE, "訂正", ledger=ledger_rows(*CATALOG))
        self.assertIs(result.state, S.CONFIRM_CORRECTION_START)

    def test_order_correction_start(self):
        result = step(S.IDLE, "発注訂正", ledger=ledger_rows(*CATALOG))
        self.assertIs(result.state, S.CONFIRM_ORDER_CORRECTION_START)

    def test_check_without_rows(self):
        result = step(S.IDLE, "確認")
        self.assertIs(result.state, S.IDLE)
        self.assertIn("まだありません", result.reply)

    def test_check_lists_rows(self):
        result = step(S.IDLE, "確認", ledger=ledger_rows(*CATALOG))
        self.assertEqual(result.reply.count("\n"), 2 + len(CATALOG) - 1)
        self.assertIn("キャベツ：残数5／発注10個", result.reply)


class TestInitialEntry(unittest.TestCase):

    def test_confirm_start_yes(self):
        result = step(S.CONFIRM_START, "はい")
        self.assertIs(result.state, S.COLLECTING)
        self.assertEqual(result.reply, "キャベツの残数を数字で入力してください。")
        self.assertEqual(result.effects, (ClearScratch(),))

    def test_confirm_start_with_existing_rows(self):
        result = step(S.CONFIRM_START, "はい", ledger=ledger_rows(*CATALOG))
        self.assertIs(result.state, S.CONFIRM_OVERWRITE)
        self.assertEqual(result.effects, ())

    def test_confirm_start_no(self):
        result = step(S.CONFIRM_START, "いいえ")
        self.assertIs(result.state, S.IDLE)

    def test_confirm_start_reprompts(self):
        result = step(S.CONFIRM_START, "うん")
        self.assertIs(result.state, S.CONFIRM_START)
        self.assertIn("「はい」または「いいえ」", result.reply)

    def test_confirm_overwrite_yes_archives(self):
        result = step(S.CONFIRM_OVERWRITE, "はい", ledger=ledger_rows(*CATALOG))
        self.assertIs(result.state, S.COLLECTING)
        self.assertEqual(result.effects, (ArchiveLedgerDay(), ClearScratch()))
        self.assertTrue(result.failure_reply)

    def test_confirm_overwrite_no(self):
        result = step(S.CONFIRM_OVERWRITE, "いいえ")
        self.assertIs(result.state, S.IDLE)
        self.assertEqual(result.effects, ())

    def test_collecting_follows_catalog_order(self):
        scratch = {}
        prompts = []
        state = S.COLLECTING
        for quantity in (5, 3, 2):
            result = step(state, str(quantity), scratch)
            (effect,) = result.effects
            self.assertIsInstance(effect, RecordScratch)
            scratch[effect.product] = ScratchEntry(USER, DATE, effect.product, effect.quantity, STATUS_FILLED)
            prompts.append(result.reply)
            state = result.state

        self.assertEqual(list(scratch), CATALOG)
        self.assertEqual(prompts[0], "プリンの残数を数字で入力してください。")
        self.assertEqual(prompts[1], "カレーの残数を数字で入力してください。")
        self.assertIn("3つすべての入力が完了しました", prompts[2])
        self.assertIs(state, S.CONFIRM_COMMIT)

    def test_collecting_skips_done_products_only(self):
        scratch = filled(("プリン", 4))
        scratch["キャベツ"] = ScratchEntry(USER, DATE, "キャベツ", None, STATUS_PENDING)
        result = step(S.COLLECTING, "7", scratch)
        self.assertEqual(result.effects, (RecordScratch("キャベツ", 7),))
        self.assertEqual(result.reply, "カレーの残数を数字で入力してください。")

    def test_collecting_rejects_non_numeric(self):
        result = step(S.COLLECTING, "abc")
        self.assertIs(result.state, S.COLLECTING)
        self.assertEqual(result.effects, ())
        self.assertIn("数字のみで送信してください。", result.reply)
        self.assertIn("「キャンセル」", result.reply)

    def test_collecting_with_everything_filled(self):
        result = step(S.COLLECTING, "1", filled(("キャベツ", 1), ("プリン", 2), ("カレー", 3)))
        self.assertIs(result.state, S.CONFIRM_COMMIT)
        self.assertEqual(result.effects, ())

    def test_commit(self):
        result = step(S.CONFIRM_COMMIT, "はい", filled(("カレー", 2), ("キャベツ", 5), ("プリン", 3)))
        self.assertIs(result.state, S.IDLE)
        self.assertEqual(result.effects, (
            CommitLedger((("キャベツ", 5), ("プリン", 3), ("カレー", 2))),
            ClearScratch(),
        ))
        self.assertTrue(result.summarize)
        self.assertIn("{summary}", result.reply)
        self.assertEqual(result.failure_reply, "登録中にエラーが発生しました。")

    def test_commit_incomplete(self):
        result = step(S.CONFIRM_COMMIT, "はい", filled(("キャベツ", 5)))
        self.assertIs(result.state, S.CONFIRM_COMMIT)
        self.assertEqual(result.effects, ())
        self.assertIn("3商品の入力が未完です。", result.reply)

    def test_commit_declined(self):
        result = step(S.CONFIRM_COMMIT, "いいえ", filled(("キャベツ", 5)))
        self.assertIs(result.state, S.IDLE)
        self.assertEqual(result.effects, (ClearScratch(),))


class TestCorrection(unittest.TestCase):

    def test_kind_selection(self):
        self.assertIs(step(S.CONFIRM_CORRECTION_START, "はい").state, S.CHOOSE_CORRECTION_KIND)
        self.assertIs(step(S.CONFIRM_CORRECTION_START, "いいえ").state, S.IDLE)
        self.assertIs(step(S.CONFIRM_CORRECTION_START, "?").state, S.CONFIRM_CORRECTION_START)
        self.assertIs(step(S.CHOOSE_CORRECTION_KIND, "残数").state, S.CHOOSE_CORRECTION_TARGET)
        self.assertIs(step(S.CHOOSE_CORRECTION_KIND, "発注数").state, S.CHOOSE_ORDER_CORRECTION_TARGET)
        self.assertIs(step(S.CHOOSE_CORRECTION_KIND, "両方").state, S.CHOOSE_CORRECTION_KIND)

    def test_choose_target(self):
        result = step(S.CHOOSE_CORRECTION_TARGET, "プリン")
        self.assertIs(result.state, S.CORRECTION_COLLECTING)
        self.assertEqual(result.effects, (ClearScratch(), RecordScratch("プリン")))
        self.assertEqual(result.reply, "プリンの残数を数字で入力してください。")

    def test_choose_unknown_target(self):
        result = step(S.CHOOSE_CORRECTION_TARGET, "トマト")
        self.assertIs(result.state, S.CHOOSE_CORRECTION_TARGET)
        self.assertEqual(result.effects, ())

    def test_correction_quantity(self):
        scratch = {"プリン": ScratchEntry(USER, DATE, "プリン", None, STATUS_PENDING)}
        result = step(S.CORRECTION_COLLECTING, "9", scratch)
        self.assertIs(result.state, S.CONFIRM_CORRECTION_COMMIT)
        self.assertEqual(result.effects, (RecordScratch("プリン", 9),))
        self.assertIn("プリンの残数を9に訂正します", result.reply)

    def test_correction_quantity_invalid(self):
        scratch = {"プリン": ScratchEntry(USER, DATE, "プリン", None, STATUS_PENDING)}
        result = step(S.CORRECTION_COLLECTING, "x", scratch)
        self.assertIs(result.state, S.CORRECTION_COLLECTING)
        self.assertEqual(result.effects, ())

    def test_correction_commit_updates_one_cell(self):
        rows = ledger_rows(*CATALOG)
        result = step(S.CONFIRM_CORRECTION_COMMIT, "はい", filled(("プリン", 9)), rows)
        self.assertIs(result.state, S.IDLE)
        self.assertEqual(result.effects, (UpdateLedgerCell(rows[1], COLUMN_REMAINING, 9), ClearScratch()))
        self.assertFalse(any(isinstance(e, CommitLedger) for e in result.effects))

    def test_correction_commit_missing_row(self):
        result = step(S.CONFIRM_CORRECTION_COMMIT, "はい", filled(("プリン", 9)), ledger_rows("キャベツ"))
        self.assertIs(result.state, S.IDLE)
        self.assertEqual(result.effects, (ClearScratch(),))
        self.assertIn("見つかりません", result.reply)

    def test_correction_commit_no_returns_to_selector(self):
        result = step(S.CONFIRM_CORRECTION_COMMIT, "いいえ", filled(("プリン", 9)))
        self.assertIs(result.state, S.CHOOSE_CORRECTION_TARGET)
        self.assertTrue(result.reply.startswith("訂正をやり直します。"))

    def test_order_correction_flow(self):
        rows = ledger_rows(*CATALOG)
        self.assertIs(step(S.CONFIRM_ORDER_CORRECTION_START, "はい").state, S.CHOOSE_ORDER_CORRECTION_TARGET)
        self.assertIs(step(S.CHOOSE_ORDER_CORRECTION_TARGET, "カレー").state, S.ORDER_CORRECTION_COLLECTING)

        pending = {"カレー": ScratchEntry(USER, DATE, "カレー", None, STATUS_PENDING)}
        result = step(S.ORDER_CORRECTION_COLLECTING, "12", pending)
        self.assertIs(result.state, S.CONFIRM_ORDER_CORRECTION_COMMIT)
        self.assertIn("カレーの発注数を12に訂正します", result.reply)

        result = step(S.CONFIRM_ORDER_CORRECTION_COMMIT, "はい", filled(("カレー", 12)), rows)
        self.assertEqual(result.effects[0], UpdateLedgerCell(rows[2], COLUMN_ORDER, 12))

        result = step(S.CONFIRM_ORDER_CORRECTION_COMMIT, "いいえ", filled(("カレー", 12)), rows)
        self.assertIs(result.state, S.CHOOSE_ORDER_CORRECTION_TARGET)


if __name__ == '__main__':
    unittest.main()
