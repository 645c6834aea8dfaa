#!/usr/bin/env python3
"""
Reliability Demo: example study → analysis → merge → agreement → validation

Shows the full workflow:
1. Build the example column set
2. Analyze its columns
3. Merge trials with reaches
4. Score the reliability coder against the primary coder
5. Validate code values and save the project
"""

import logging

from codesheet.analyzer import analyze_project
from codesheet.algebra import create_mutually_exclusive
from codesheet.config import setup_logging
from codesheet.examples import build_example_project
from codesheet.reliability import check_reliability, compute_kappa
from codesheet.serialization import save
from codesheet.validation import check_valid_codes_map


def main():
    setup_logging(logging.WARNING)

    print("=" * 70)
    print("RELIABILITY DEMO: reaching study")
    print("=" * 70)

    # =========================================================================
    # STEP 1: Build
    # =========================================================================
    project, metadata = build_example_project()
    print(f"\n1. Columns: {', '.join(project.column_names())}")

    # =========================================================================
    # STEP 2: Analyze
    # =========================================================================
    report = analyze_project(project)
    print("\n2. Coded time per column:")
    for name in report.by_duration:
        col = report.columns[name]
        print(f"   {name:<10} {col.total_cells:>3} cells  {col.total_duration:>6} ms")
    for warning in report.warnings:
        print(f"   ! {warning}")

    # =========================================================================
    # STEP 3: Merge
    # =========================================================================
    merged = create_mutually_exclusive("trial_reach", "trial", "reach", project=project)
    project.set_column(merged)
    print(f"\n3. Merged trial/reach into {len(merged.cells)} cells")
    for cell in merged.cells[:5]:
        print("   " + "\t".join(cell.as_row()))

    # =========================================================================
    # STEP 4: Agreement
    # =========================================================================
    kappas, tables = compute_kappa("reach", "reach_rel", ["hand", "grasp"], project=project)
    print("\n4. Cohen's kappa (reach vs reach_rel):")
    for code, kappa in kappas.items():
        print(f"   {code}: {kappa:.3f}")
        print("   " + str(tables[code]).replace("\n", "\n   ").rstrip())

    rel = check_reliability("trial", "trial_rel", "trialnum", project=project)
    print("\n   Trial check:")
    print("   " + rel.format().replace("\n", "\n   ").rstrip())

    # =========================================================================
    # STEP 5: Validate and save
    # =========================================================================
    errors = check_valid_codes_map({
        "reach": {"hand": ["l", "r", "b"], "grasp": ["y", "n"]},
        "trial": {"condition": ["toy", "food"]},
    }, project=project)
    print(f"\n5. Invalid code values: {errors.error_count}")

    save(project, metadata, "reaching_study.yaml")
    print("   ✓ Project saved to reaching_study.yaml")


if __name__ == "__main__":
    main()
