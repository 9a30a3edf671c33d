"""
Tests for Seihin.core.merge: Last-Writer-Wins merge of local and remote collections.

Run:
    python -m unittest tests.test_merge
"""
import unittest

from Seihin.core import merge
from Seihin.core import models
from tests.base import T10, T11, T12, expense, week_budget


class MergeExpensesTests(unittest.TestCase):

    def test_empty_inputs(self):
        self.assertEqual(merge.merge_expenses([], []), [])

    def test_one_side_empty_returns_other_side(self):
        records = [expense('a'), expense('b', amount=100)]
        self.assertEqual(merge.merge_expenses(records, []), records)
        self.assertEqual(merge.merge_expenses([], records), records)

    def test_newer_remote_wins(self):
        local = [expense('e1', amount=500, updated_at=T10)]
        remote = [expense('e1', amount=800, updated_at=T11)]
        merged = merge.merge_expenses(local, remote)
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].amount, 800)

    def test_newer_local_wins(self):
        local = [expense('e1', amount=500, updated_at=T11)]
        remote = [expense('e1', amount=800, updated_at=T10)]
        self.assertEqual(merge.merge_expenses(local, remote)[0].amount, 500)

    def test_tie_keeps_local(self):
        local = [expense('e1', amount=500, updated_at=T10)]
        remote = [expense('e1', amount=800, updated_at=T10)]
        self.assertEqual(merge.merge_expenses(local, remote)[0].amount, 500)
        # Not commutative under ties
        self.assertEqual(merge.merge_expenses(remote, local)[0].amount, 800)

    def test_remote_tombstone_propagates(self):
        local = [expense('e1', deleted=False, updated_at=T10)]
        remote = [expense('e1', deleted=True, updated_at=T11)]
        merged = merge.merge_expenses(local, remote)
        self.assertEqual(len(merged), 1)
        self.assertTrue(merged[0].deleted)

    def test_stale_tombstone_loses(self):
        local = [expense('e1', amount=700, updated_at=T12)]
        remote = [expense('e1', deleted=True, updated_at=T11)]
        merged = merge.merge_expenses(local, remote)
        self.assertFalse(merged[0].deleted)
        self.assertEqual(merged[0].amount, 700)

    def test_union_without_duplicates(self):
        local = [expense('a'), expense('b')]
        remote = [expense('b', updated_at=T11), expense('c')]
        merged = merge.merge_expenses(local, remote)
        ids = [r.id for r in merged]
        self.assertEqual(ids, ['a', 'b', 'c'])
        self.assertEqual(len(ids), len(set(ids)))

    def test_order_local_first_then_remote_only(self):
        local = [expense('z'), expense('m')]
        remote = [expense('q'), expense('m'), expense('a')]
        self.assertEqual([r.id for r in merge.merge_expenses(local, remote)], ['z', 'm', 'q', 'a'])

    def test_inputs_not_mutated(self):
        local = [expense('e1', updated_at=T10)]
        remote = [expense('e1', amount=1, updated_at=T11), expense('e2')]
        local_copy, remote_copy = list(local), list(remote)
        merge.merge_expenses(local, remote)
        self.assertEqual(local, local_copy)
        self.assertEqual(remote, remote_copy)

    def test_remerge_applies_same_rule(self):
        local = [expense('e1', amount=1, updated_at=T10), expense('e2', amount=2, updated_at=T10)]
        first = merge.merge_expenses(local, [expense('e1', amount=10, updated_at=T11)])
        second = merge.merge_expenses(first, [
            expense('e1', amount=5, updated_at=T10),
            expense('e2', amount=20, updated_at=T12),
            expense('e3', amount=30, updated_at=T10),
        ])
        amounts = {r.id: r.amount for r in second}
        self.assertEqual(amounts, {'e1': 10, 'e2': 20, 'e3': 30})


class MergeWeekBudgetTests(unittest.TestCase):

    def test_keyed_by_week_start(self):
        local = [week_budget('2026-02-02', 100, T10), week_budget('2026-02-09', 200, T11)]
        remote = [week_budget('2026-02-09', 999, T10), week_budget('2026-02-16', 300, T10)]
        merged = merge.merge_week_budgets(local, remote)
        self.assertEqual(
            [(r.week_start, r.budget) for r in merged],
            [('2026-02-02', 100), ('2026-02-09', 200), ('2026-02-16', 300)]
        )

    def test_epoch_default_loses(self):
        local = [week_budget('2026-02-09', 100, models.EPOCH_TIMESTAMP)]
        remote = [week_budget('2026-02-09', 200, T10)]
        self.assertEqual(merge.merge_week_budgets(local, remote)[0].budget, 200)


class MergeDefaultWeekBudgetTests(unittest.TestCase):

    def test_absent_sides(self):
        value = models.DefaultWeekBudget(budget=100, updated_at=T10)
        self.assertIsNone(merge.merge_default_week_budget(None, None))
        self.assertEqual(merge.merge_default_week_budget(value, None), value)
        self.assertEqual(merge.merge_default_week_budget(None, value), value)

    def test_lww(self):
        old = models.DefaultWeekBudget(budget=100, updated_at=T10)
        new = models.DefaultWeekBudget(budget=200, updated_at=T11)
        self.assertEqual(merge.merge_default_week_budget(old, new), new)
        self.assertEqual(merge.merge_default_week_budget(new, old), new)

    def test_tie_keeps_local(self):
        local = models.DefaultWeekBudget(budget=100, updated_at=T10)
        remote = models.DefaultWeekBudget(budget=200, updated_at=T10)
        self.assertEqual(merge.merge_default_week_budget(local, remote), local)


class MergeStateTests(unittest.TestCase):

    def test_merges_every_collection(self):
        local = models.LocalState(
            expenses=[expense('e1', amount=1, updated_at=T10)],
            week_budgets=[week_budget('2026-02-09', 100, T12)],
            default_week_budget=None,
        )
        remote = models.LocalState(
            expenses=[expense('e1', amount=2, updated_at=T11), expense('e2', deleted=True)],
            week_budgets=[week_budget('2026-02-09', 200, T11)],
            default_week_budget=models.DefaultWeekBudget(budget=5000, updated_at=T10),
        )
        merged = merge.merge_state(local, remote)
        self.assertEqual([(r.id, r.amount) for r in merged.expenses], [('e1', 2), ('e2', 500)])
        self.assertEqual(merged.week_budgets[0].budget, 100)
        self.assertEqual(merged.default_week_budget.budget, 5000)
        self.assertEqual([r.id for r in merged.tombstones().expenses], ['e2'])
