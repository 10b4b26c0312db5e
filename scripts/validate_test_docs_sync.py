#!/usr/bin/env python3
"""
Check that docs/test_scenarios_business_summary.md documents every scenario
in tests/test_integration_scenarios.py, each method under its own class.

Run: python scripts/validate_test_docs_sync.py [--strict]

--strict also fails on documented scenarios that no longer exist.
"""

import argparse
import ast
import re
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
TEST_FILE = PROJECT_ROOT / 'tests' / 'test_integration_scenarios.py'
DOC_FILE = PROJECT_ROOT / 'docs' / 'test_scenarios_business_summary.md'

DOC_ENTRY = re.compile(r'\*\*Test (Class|Method)\*\*:\s*`(\w+)`')


def scenarios_in_tests(test_file: Path) -> dict[str, list[str]]:
    """Map each Test* class to its test_* methods, in file order."""
    tree = ast.parse(test_file.read_text())
    scenarios = {}
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name.startswith('Test'):
            scenarios[node.name] = [
                item.name for item in node.body
                if isinstance(item, ast.FunctionDef) and item.name.startswith('test_')
            ]
    return scenarios


def scenarios_in_docs(doc_file: Path) -> dict[str, list[str]]:
    """Map each documented class to the methods listed after it."""
    documented = {}
    current = None
    for kind, name in DOC_ENTRY.findall(doc_file.read_text()):
        if kind == 'Class':
            current = name
            documented.setdefault(current, [])
        elif current is not None:
            documented[current].append(name)
    return documented


def compare(tests: dict[str, list[str]], docs: dict[str, list[str]]) -> tuple[list[str], list[str]]:
    """Return (missing, stale) descriptions."""
    missing = []
    stale = []

    for cls, methods in tests.items():
        if cls not in docs:
            missing.append(f"class {cls}")
            continue
        for method in methods:
            if method not in docs[cls]:
                missing.append(f"{cls}.{method}")

    for cls, methods in docs.items():
        if cls not in tests:
            stale.append(f"class {cls}")
            continue
        for method in methods:
            if method not in tests[cls]:
                stale.append(f"{cls}.{method}")

    return missing, stale


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('--strict', action='store_true', help='treat stale documentation as an error')
    args = parser.parse_args(argv)

    for path in (TEST_FILE, DOC_FILE):
        if not path.exists():
            print(f"File not found: {path}")
            return 1

    tests = scenarios_in_tests(TEST_FILE)
    docs = scenarios_in_docs(DOC_FILE)
    missing, stale = compare(tests, docs)

    print(f"Scenarios: {len(tests)} classes, {sum(len(m) for m in tests.values())} methods")
    for entry in missing:
        print(f"  MISSING  {entry}")
    for entry in stale:
        print(f"  STALE    {entry}")

    if missing or (args.strict and stale):
        print(f"Update {DOC_FILE.relative_to(PROJECT_ROOT)}")
        return 1

    print("Documentation is in sync")
    return 0


if __name__ == '__main__':
    sys.exit(main())
