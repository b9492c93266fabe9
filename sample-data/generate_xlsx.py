#!/usr/bin/env python3
"""
Generates sample-data/gl_export_sample.xlsx, a GL export workbook with the
problems gl-recon is built to surface.

Run from the repo root:
    python sample-data/generate_xlsx.py

Problems baked in:
  Sheet "GL Export"
    - Posting dates as real Excel date cells, DD/MM/YYYY text, 2025/DD/MM
      text and one impossible 2025/02/30
    - Header spellings that only match through synonyms ("Date", "Dr", "Cr",
      "Offset Acc", "Property")
    - Parentheses negatives and thousands separators in amounts
    - Rows with no site, several sites in the text, and a file site that
      disagrees with the reference text
    - A near-empty subtotal row
  Sheet "Notes"
    - Free text the importer must ignore (only the first sheet is read)
"""

from datetime import datetime
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "gl_export_sample.xlsx"

wb = openpyxl.Workbook()

# ── Sheet 1: GL Export ───────────────────────────────────────────────────────
ws = wb.active
ws.title = "GL Export"

headers = ["Date", "Trans. No.", "Origin", "Ref. 1", "Offset Acc", "Details", "Dr", "Cr", "Property"]
ws.append(headers)

data = [
    # date                    trans   origin ref1          offset      details                 dr          cr          site
    [datetime(2024, 5, 10),   "1001", "RC",  "P088 rent",  "T0012345", "Receipt P088",         None,       "1,000.00", "P088"],
    ["01/01/2024",            "1000", "OB",  None,         None,       "Opening balance",      "5,000.00", None,       None],
    ["2025/15/03",            "1002", "PU",  None,         "CIP4001",  "Landlord credit P012", None,       800,        None],
    ["20/06/2024",            "1003", "JE",  None,         "DBT2001",  "Accrual adjustment",   "(250.00)", None,       None],
    ["05-07-2024",            "1004", "IN",  "P088 P099",  "T0099V",   "Tenant invoice",       120,        None,       "P088"],
    ["2025/02/30",            "1005", "PS",  None,         "T0077C",   "Site P101 charge",     None,       50,         "P100"],
    [None,                    None,   None,  None,         None,       "Subtotal",             "4,520.00", None,       None],
]

for row in data:
    ws.append(row)

ws["A2"].number_format = "DD/MM/YYYY"

# ── Sheet 2: Notes ───────────────────────────────────────────────────────────
ws_notes = wb.create_sheet("Notes")
ws_notes.append(["Exported from the ERP on the first working day of the month."])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
