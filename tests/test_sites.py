import unittest

from gl_recon.pipeline.sites import extract_account_code, extract_sites


class ExtractSitesTests(unittest.TestCase):
    def test_first_seen_order(self):
        self.assertEqual(extract_sites("Invoice for P088 and P012 ref"), ["P088", "P012"])

    def test_duplicates_collapse(self):
        self.assertEqual(extract_sites("P088 / P088 / p088"), ["P088"])

    def test_lower_case_codes_are_upper_cased(self):
        self.assertEqual(extract_sites("site p012"), ["P012"])

    def test_word_boundaries_are_required(self):
        self.assertEqual(extract_sites("P0881 XP088 P08"), [])
        self.assertEqual(extract_sites("(P088),P099."), ["P088", "P099"])

    def test_empty_input(self):
        self.assertEqual(extract_sites(""), [])
        self.assertEqual(extract_sites(None), [])


class ExtractAccountCodeTests(unittest.TestCase):
    def test_first_digit_run(self):
        self.assertEqual(extract_account_code("CIP4001"), "4001")
        self.assertEqual(extract_account_code("T0012345 X99"), "0012345")

    def test_no_digits(self):
        self.assertEqual(extract_account_code("CASH"), "")
        self.assertEqual(extract_account_code(""), "")


if __name__ == "__main__":
    unittest.main()
