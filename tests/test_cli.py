from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "gl_recon.cli"]
FIXED_STAMP = "20260301T010203Z"
SAMPLE_CSV = "sample-data/gl_export_sample.csv"
SAMPLE_DIRECTORY = "sample-data/account_directory.csv"


def run_cli(*args: str, env: dict[str, str] | None = None, cwd: Path = ROOT) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["GL_RECON_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env.pop("GL_RECON_CONFIG", None)
    merged_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), merged_env.get("PYTHONPATH")]))
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def import_sample(tmpdir: str, *extra: str) -> subprocess.CompletedProcess[str]:
    return run_cli(
        "import",
        SAMPLE_CSV,
        "--company",
        "ZA01",
        "--gl",
        "9020",
        "--directory",
        SAMPLE_DIRECTORY,
        "--out",
        tmpdir,
        *extra,
    )


class GlReconImportCliTests(unittest.TestCase):
    def test_import_with_open_rows_returns_exit_3_and_writes_outputs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = import_sample(tmpdir)
            self.assertEqual(proc.returncode, 3, proc.stderr)
            self.assertIn("Rows imported: 6", proc.stderr)
            self.assertIn("Open for review: 3", proc.stderr)

            out = Path(tmpdir)
            ledger = json.loads((out / "ledger.json").read_text(encoding="utf-8"))
            self.assertEqual(ledger["contract"]["name"], "gl_recon.ledger")
            self.assertEqual(len(ledger["entries"]), 6)
            self.assertEqual(ledger["metadata"]["company_code"], "ZA01")

            summary = json.loads((out / "import-summary.json").read_text(encoding="utf-8"))
            self.assertEqual(summary["contract"]["name"], "gl_recon.import_summary")
            self.assertEqual(summary["run_summary"]["metrics"]["skipped_rows"], 1)
            self.assertEqual(summary["run_summary"]["metrics"]["account_directory_items"], 3)

            wb = load_workbook(out / "ledger.xlsx")
            self.assertEqual(
                wb.sheetnames,
                ["Ledger", "Site Queue", "Date Failures", "Override Log", "Site Summary", "Allocations", "Journal Fixes"],
            )

    def test_import_json_stdout_contains_only_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = import_sample(tmpdir, "--json", "--format", "json")
            self.assertEqual(proc.returncode, 3, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["run_summary"]["metrics"]["open_review_rows"], 3)
            self.assertNotIn("workbook", payload["run_summary"]["outputs"])
            self.assertEqual(payload["run_summary"]["command"], "import")
            self.assertFalse((Path(tmpdir) / "ledger.xlsx").exists())

    def test_import_refuses_to_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(import_sample(tmpdir, "-q").returncode, 3)
            proc = import_sample(tmpdir, "-q")
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Refusing to overwrite", proc.stderr)

    def test_import_missing_required_columns_returns_exit_5(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "short.csv"
            path.write_text("Posting Date,Origin,Details\n10/05/2024,RC,x\n", encoding="utf-8")
            proc = run_cli("import", str(path), "--company", "ZA01", "--out", str(Path(tmpdir) / "out"))
            self.assertEqual(proc.returncode, 5, proc.stderr)
            self.assertIn("Missing required columns: Trans. No., Offset Account, Debit (LC), Credit (LC), Site.", proc.stderr)

    def test_zero_byte_and_header_only_inputs_return_exit_5(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            empty = Path(tmpdir) / "empty.csv"
            empty.write_bytes(b"")
            header_only = Path(tmpdir) / "header.csv"
            header_only.write_text((ROOT / SAMPLE_CSV).read_text(encoding="utf-8").splitlines()[0] + "\n", encoding="utf-8")
            for index, path in enumerate((empty, header_only)):
                with self.subTest(path=path.name):
                    proc = run_cli("import", str(path), "--company", "ZA01", "--out", str(Path(tmpdir) / f"out{index}"))
                    self.assertEqual(proc.returncode, 5, proc.stderr)
                    self.assertIn("The file appears to be empty.", proc.stderr)

    def test_import_without_company_is_a_command_error(self):
        proc = run_cli("import", SAMPLE_CSV, "--out", "unused")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Please enter Company Code", proc.stderr)

    def test_import_reads_config_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("import", SAMPLE_CSV, "--config", "sample-data/gl-recon.json", "--out", tmpdir, "--json")
            self.assertEqual(proc.returncode, 3, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["metadata"]["company_code"], "ZA01")
            self.assertEqual(payload["metadata"]["gl_account_name"], "Tenant Control")
            self.assertEqual(payload["run_summary"]["metrics"]["account_directory_items"], 3)

    def test_import_default_output_directory_uses_stamp(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("import", str(ROOT / SAMPLE_CSV), "--company", "ZA01", "-q", cwd=Path(tmpdir))
            self.assertEqual(proc.returncode, 3, proc.stderr)
            output_dir = Path(tmpdir) / "gl-recon-output" / f"gl_export_sample-{FIXED_STAMP}"
            self.assertTrue((output_dir / "ledger.json").exists())

    def test_missing_input_and_unsupported_type(self):
        self.assertEqual(run_cli("import", "sample-data/nope.csv", "--company", "ZA01").returncode, 1)
        proc = run_cli("import", "setup.py", "--company", "ZA01")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unsupported file type", proc.stderr)


class GlReconReviewCliTests(unittest.TestCase):
    def test_queue_and_override_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(import_sample(tmpdir, "-q").returncode, 3)
            ledger_path = str(Path(tmpdir) / "ledger.json")

            proc = run_cli("queue", ledger_path, "--json")
            self.assertEqual(proc.returncode, 3, proc.stderr)
            open_rows = json.loads(proc.stdout)["open_rows"]
            self.assertEqual([row["trans_no"] for row in open_rows], ["1003", "1004", "1005"])

            proc = run_cli("queue", ledger_path, "--search", "accrual")
            self.assertIn("Open rows: 1", proc.stdout)

            target = open_rows[0]["row_id"]
            proc = run_cli("override", ledger_path, target, "p012", "--by", "analyst", "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            log = json.loads(proc.stdout)
            self.assertEqual((log["old_site"], log["new_site"]), ("Unknown", "P012"))

            ledger = json.loads(Path(ledger_path).read_text(encoding="utf-8"))
            updated = next(row for row in ledger["entries"] if row["row_id"] == target)
            self.assertEqual(updated["site_final"], "P012")
            self.assertEqual(updated["site_source"], "Manual Override")
            self.assertEqual(updated["site_review_status"], "Resolved")

            history = json.loads((Path(tmpdir) / "override-log.json").read_text(encoding="utf-8"))
            self.assertEqual(history["contract"]["name"], "gl_recon.override_log")
            self.assertEqual(len(history["overrides"]), 1)

            wb = load_workbook(Path(tmpdir) / "ledger.xlsx")
            self.assertEqual(wb["Override Log"].max_row, 2)

            proc = run_cli("queue", ledger_path, "--json")
            self.assertEqual(len(json.loads(proc.stdout)["open_rows"]), 2)

    def test_override_unknown_row(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            import_sample(tmpdir, "-q")
            proc = run_cli("override", str(Path(tmpdir) / "ledger.json"), "nope", "P001")
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Unknown row id(s): nope", proc.stderr)

    def test_queue_rejects_non_ledger_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "other.json"
            path.write_text("{}", encoding="utf-8")
            proc = run_cli("queue", str(path))
            self.assertEqual(proc.returncode, 2)
            self.assertIn("Not a gl_recon.ledger document.", proc.stderr)


class GlReconReconCliTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.out = Path(self._tmp.name)
        self.assertEqual(import_sample(str(self.out), "-q").returncode, 3)
        self.ledger = str(self.out / "ledger.json")
        entries = json.loads(Path(self.ledger).read_text(encoding="utf-8"))["entries"]
        self.row_ids = {entry["trans_no"]: entry["row_id"] for entry in entries}

    def test_balances(self):
        proc = run_cli("balances", self.ledger, "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "gl_recon.balances")
        self.assertEqual(
            payload["balances"],
            {"opening_balance": -5000.0, "movement": 1480.0, "journal_adjustments": 0.0, "closing_balance": -3520.0},
        )
        sites = {site["site"]: site for site in payload["sites"]}
        self.assertEqual(sites["P088"]["bank"], 1000.0)
        self.assertEqual(sites["Unknown"]["adjustments"], -250.0)

        proc = run_cli("balances", self.ledger, "--site", "p088")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Opening balance: 0.00", proc.stdout)
        self.assertIn("- P088: tenant -120.00", proc.stdout)

    def test_balances_csv_export(self):
        csv_path = self.out / "sites.csv"
        proc = run_cli("balances", self.ledger, "--csv", str(csv_path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        lines = csv_path.read_text(encoding="utf-8").splitlines()
        self.assertEqual(lines[0], "Site,Tenant,Landlord,Bank,Adjustments,Ledger Total,Journal Fixes,Reconciled Total")
        proc = run_cli("balances", self.ledger, "--csv", str(csv_path))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Refusing to overwrite", proc.stderr)

    def test_allocate_and_open_items(self):
        proc = run_cli("allocate", self.ledger, self.row_ids["1001"], self.row_ids["1004"], "--by", "analyst", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["allocated_amount"], 120.0)

        state = json.loads((self.out / "recon.json").read_text(encoding="utf-8"))
        self.assertEqual(state["contract"]["name"], "gl_recon.recon_state")
        self.assertEqual(len(state["allocations"]), 1)

        proc = run_cli("open-items", self.ledger, "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        remaining = {item["trans_no"]: item["unallocated"] for item in json.loads(proc.stdout)["open_items"]}
        self.assertEqual(remaining["1001"], 880.0)
        self.assertNotIn("1004", remaining)

        self.assertEqual(load_workbook(self.out / "ledger.xlsx")["Allocations"].max_row, 2)

        proc = run_cli("allocate", self.ledger, self.row_ids["1004"], self.row_ids["1001"])
        self.assertEqual(proc.returncode, 1)
        self.assertIn("is not a credit", proc.stderr)

    def test_journal_add_status_and_export(self):
        proc = run_cli("journal", "add", self.ledger, self.row_ids["1004"], "Wrong property", "--target-site", "P099", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        fixes = json.loads(proc.stdout)
        self.assertEqual([fix["reference"] for fix in fixes], ["RECON-REVERSAL-1004", "RECON-ALLOC-1004"])
        self.assertEqual([fix["adjustment_amount"] for fix in fixes], [120.0, -120.0])

        proc = run_cli("journal", "status", self.ledger, fixes[0]["id"], "Sent")
        self.assertEqual(proc.returncode, 0, proc.stderr)

        proc = run_cli("journal", "export", self.ledger)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        lines = proc.stdout.strip().splitlines()
        self.assertEqual(lines[0], "ID,TransNo,Company,GL,Site,OriginalAmt,AdjAmt,Instruction,Status,Date")
        self.assertEqual(len(lines), 3)
        self.assertIn(",Sent,", lines[1])

        proc = run_cli("balances", self.ledger, "--json")
        sites = {site["site"]: site for site in json.loads(proc.stdout)["sites"]}
        self.assertEqual(sites["P099"]["reconciled_total"], -120.0)
        self.assertEqual(sites["P088"]["journal"], 120.0)

        self.assertEqual(load_workbook(self.out / "ledger.xlsx")["Journal Fixes"].max_row, 3)

        out_path = self.out / "journal.csv"
        self.assertEqual(run_cli("journal", "export", self.ledger, "--out", str(out_path)).returncode, 0)
        self.assertTrue(out_path.exists())

    def test_journal_errors(self):
        proc = run_cli("journal", "status", self.ledger, "nope", "Sent")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown journal instruction: nope", proc.stderr)
        proc = run_cli("journal", "add", self.ledger, "nope", "Fix")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown row id(s): nope", proc.stderr)
        proc = run_cli("journal", "status", self.ledger, "x", "Posted")
        self.assertEqual(proc.returncode, 1)


class GlReconMiscCliTests(unittest.TestCase):
    def test_check_date(self):
        proc = run_cli("check-date", "2025/05/10", "10/05/2023")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("2025-10-05 [OK-YYYYfirst, YYYY/DD/MM]", proc.stdout)
        self.assertIn("2023-05-10 [OK-DDfirst, DD/MM/YYYY]", proc.stdout)

    def test_check_date_failure_json(self):
        proc = run_cli("check-date", "2025/02/30", "--json")
        self.assertEqual(proc.returncode, 2)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "gl_recon.date_check")
        self.assertEqual(payload["results"][0]["status"], "FAILED")
        self.assertTrue(payload["results"][0]["reason"].startswith("Month out of bounds: 30."))

    def test_config_init_writes_loadable_json_and_refuses_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "gl-recon.json"
            proc = run_cli("config", "init", "--path", str(path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(payload["gl_account"], "9020")
            proc = run_cli("config", "init", "--path", str(path))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Refusing to overwrite existing config", proc.stderr)

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertRegex(proc.stdout.strip(), r"^\d+\.\d+\.\d+$")

    def test_bad_arguments_return_exit_1(self):
        proc = run_cli("import")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("required", proc.stderr)


if __name__ == "__main__":
    unittest.main()
