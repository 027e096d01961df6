from decimal import Decimal

from django.test import SimpleTestCase

from apps.billing import totals


class TotalsEngineTest(SimpleTestCase):
    def test_single_line(self):
        result = totals.compute_totals([{"qty": 2, "unit_price": "50000", "vat_rate": 18}])
        self.assertEqual(result.total_ht, Decimal("100000.00"))
        self.assertEqual(result.total_tva, Decimal("18000.00"))
        self.assertEqual(result.total_ttc, Decimal("118000.00"))

    def test_sums_before_rounding(self):
        # Three lines of 0.005 TVA each: 0.015 rounds to 0.02, per-line rounding would give 0.03
        items = [{"qty": 1, "unit_price": "0.05", "vat_rate": 10} for _ in range(3)]
        result = totals.compute_totals(items)
        self.assertEqual(result.total_ht, Decimal("0.15"))
        self.assertEqual(result.total_tva, Decimal("0.02"))
        self.assertEqual(result.total_ttc, Decimal("0.17"))

    def test_ttc_is_rounded_ht_plus_rounded_tva(self):
        items = [
            {"qty": "3", "unit_price": "33.335", "vat_rate": "18"},
            {"qty": "1.5", "unit_price": "12.10", "vat_rate": "5.5"},
        ]
        result = totals.compute_totals(items)
        self.assertEqual(result.total_ttc, result.total_ht + result.total_tva)

    def test_half_up(self):
        self.assertEqual(totals.round_money("2.345"), Decimal("2.35"))
        self.assertEqual(totals.round_money("2.344"), Decimal("2.34"))

    def test_empty(self):
        self.assertEqual(totals.compute_totals([]), totals.ZERO_TOTALS)

    def test_float_input_is_exact(self):
        result = totals.compute_totals([{"qty": 3, "unit_price": 0.1, "vat_rate": 0}])
        self.assertEqual(result.total_ht, Decimal("0.30"))

    def test_rejects_negative_values(self):
        for line in (
            {"qty": -1, "unit_price": 10, "vat_rate": 0},
            {"qty": 1, "unit_price": -10, "vat_rate": 0},
            {"qty": 1, "unit_price": 10, "vat_rate": -1},
            {"qty": 1, "unit_price": 10, "vat_rate": 101},
        ):
            with self.assertRaises(ValueError):
                totals.compute_totals([line])

    def test_rejects_garbage(self):
        with self.assertRaises(ValueError):
            totals.to_decimal("abc")
