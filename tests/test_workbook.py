import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook

from gl_recon.pipeline.classifier import process_ledger_row
from gl_recon.pipeline.shared import ImportMetadata
from gl_recon.recon import allocate, create_journal_fix, set_journal_status
from gl_recon.review import apply_site_override
from gl_recon.workbook import write_workbook

META = ImportMetadata(id="imp-1", company_code="ZA01", gl_account="9020")


def make_entry(**overrides):
    row = {
        "Posting Date": "10/05/2024",
        "Trans. No.": "1001",
        "Origin": "RC",
        "Offset Account": "T0012345",
        "Details": "Receipt",
        "Debit (LC)": "",
        "Credit (LC)": "1,000.00",
        "Site": "P088",
    }
    row.update(overrides)
    return process_ledger_row(row, META, [])


class WriteWorkbookTests(unittest.TestCase):
    def setUp(self):
        self.clean = make_entry()
        self.missing = make_entry(**{"Trans. No.": "1003", "Site": ""})
        self.bad_date = make_entry(**{"Trans. No.": "1005", "Posting Date": "2025/02/30"})
        _, self.log = apply_site_override(self.missing, "P012", changed_by="analyst")

    def write(self, tmpdir, **kwargs):
        path = Path(tmpdir) / "nested" / "ledger.xlsx"
        write_workbook([self.clean, self.missing, self.bad_date], path, **kwargs)
        return path

    def test_sheets_and_styled_headers(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            wb = load_workbook(self.write(tmpdir))
            self.assertEqual(
                wb.sheetnames,
                ["Ledger", "Site Queue", "Date Failures", "Override Log", "Site Summary", "Allocations", "Journal Fixes"],
            )
            ledger = wb["Ledger"]
            self.assertEqual(ledger.freeze_panes, "A2")
            self.assertTrue(ledger["A1"].font.bold)
            self.assertEqual(ledger["A1"].value, "Posting Date")
            self.assertEqual(ledger.max_row, 4)

    def test_queue_lists_open_rows_with_reasons(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = load_workbook(self.write(tmpdir))["Site Queue"]
            rows = list(queue.iter_rows(min_row=2, values_only=True))
            self.assertEqual([row[2] for row in rows], ["1003", "1005"])
            self.assertEqual(rows[0][-1], "Missing Site")
            self.assertEqual(rows[1][-1], "Date Parse Failed")

    def test_date_failures_sheet(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sheet = load_workbook(self.write(tmpdir))["Date Failures"]
            rows = list(sheet.iter_rows(min_row=2, values_only=True))
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0][2:5], ("2025/02/30", "YYYY/DD/MM", "FAILED"))
            self.assertTrue(rows[0][5].startswith("Month out of bounds: 30."))

    def test_review_cells_are_accented(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ledger = load_workbook(self.write(tmpdir))["Ledger"]
            headers = [cell.value for cell in ledger[1]]
            status_col = headers.index("Review Status") + 1
            self.assertEqual(ledger.cell(3, status_col).fill.fgColor.rgb[-6:], "FCE4D6")
            self.assertNotEqual(ledger.cell(2, status_col).fill.fill_type, "solid")

    def test_override_log_sheet(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_sheet = load_workbook(self.write(tmpdir, override_logs=[self.log]))["Override Log"]
            headers = [cell.value for cell in log_sheet[1]]
            values = dict(zip(headers, next(log_sheet.iter_rows(min_row=2, values_only=True))))
            self.assertEqual(values["old_site"], "Unknown")
            self.assertEqual(values["new_site"], "P012")
            self.assertEqual(values["changed_by"], "analyst")

    def test_site_summary_sheet(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sheet = load_workbook(self.write(tmpdir))["Site Summary"]
            headers = [cell.value for cell in sheet[1]]
            self.assertEqual(headers[0], "Site")
            self.assertEqual(headers[-1], "Reconciled Total")
            rows = {row[0]: dict(zip(headers, row)) for row in sheet.iter_rows(min_row=2, values_only=True)}
            self.assertEqual(rows["P088"]["Bank"], 2000.0)
            self.assertEqual(rows["Unknown"]["Ledger Total"], 1000.0)
            self.assertEqual(sheet.cell(2, 2).number_format, "#,##0.00")

    def test_allocation_and_journal_sheets(self):
        debit = make_entry(**{"Trans. No.": "2001", "Origin": "IN", "Debit (LC)": "400", "Credit (LC)": ""})
        allocation = allocate(self.clean, debit, allocated_by="analyst")
        fixes = create_journal_fix(debit, "Wrong property", target_site="P099")
        fixes = set_journal_status(fixes, fixes[0].id, "Processed")
        with tempfile.TemporaryDirectory() as tmpdir:
            wb = load_workbook(self.write(tmpdir, allocations=[allocation], journal_instructions=fixes))
            allocations = list(wb["Allocations"].iter_rows(min_row=2, values_only=True))
            self.assertEqual(len(allocations), 1)
            self.assertIn(400.0, allocations[0])
            journal = wb["Journal Fixes"]
            headers = [cell.value for cell in journal[1]]
            status_col = headers.index("Status") + 1
            self.assertEqual(journal.cell(2, status_col).value, "Processed")
            self.assertEqual(journal.cell(2, status_col).fill.fgColor.rgb[-6:], "E2EFDA")
            self.assertEqual(journal.cell(3, headers.index("TransNo") + 1).value, "RECON-ALLOC-2001")
            summary = {row[0]: row for row in wb["Site Summary"].iter_rows(min_row=2, values_only=True)}
            self.assertEqual(summary["P099"][-1], -400.0)


if __name__ == "__main__":
    unittest.main()
