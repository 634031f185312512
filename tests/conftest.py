# tests/conftest.py
"""
Shared fixtures and Rust snippets for the poplint test-suite.
"""

from typing import List, Tuple

import pytest

from poplint import hir as H
from poplint.checkers import CheckerRunner, SuppressionManager
from poplint.matchers import LintContext
from poplint.parser import parse_text
from poplint.resolver import TypeckResults, typeck
from poplint.source import SourceFile
from poplint.suggestion import apply_edits, build_suggestion
from poplint.visitor import walk
from poplint.while_pop_unwrap import Finding, check_while


# ═══════════════════════════════════════════════════════════════════════════
# RUST SNIPPETS
# ═══════════════════════════════════════════════════════════════════════════

LOCAL_FORM_RS = """\
fn drain(mut v: Vec<i32>) {
    while !v.is_empty() {
        let x = v.pop().unwrap();
        process(x);
    }
}
"""

ARGUMENT_FORM_RS = """\
fn drain(mut v: Vec<i32>, other_arg: i32) {
    while !v.is_empty() {
        process(other_arg, v.pop().unwrap());
    }
}
"""

MISMATCHED_RS = """\
fn drain(mut a: Vec<i32>, mut b: Vec<i32>) {
    while !a.is_empty() {
        let x = b.pop().unwrap();
        process(x);
    }
}
"""

USER_STACK_RS = """\
struct Stack {
    items: Vec<u8>,
}

impl Stack {
    fn is_empty(&self) -> bool {
        self.items.is_empty()
    }

    fn pop(&mut self) -> Option<u8> {
        self.items.pop()
    }
}

fn drain(mut s: Stack) {
    while !s.is_empty() {
        let x = s.pop().unwrap();
        process(x);
    }
}
"""

FIELD_RECEIVER_RS = """\
struct Machine {
    stack: Vec<u64>,
}

impl Machine {
    fn run(&mut self) {
        while !self.stack.is_empty() {
            let top = self.stack.pop().unwrap();
            self.exec(top);
        }
    }

    fn exec(&mut self, op: u64) {}
}
"""

SUPPRESSED_RS = """\
#[allow(clippy::while_pop_unwrap)]
fn quiet(mut v: Vec<i32>) {
    while !v.is_empty() {
        let x = v.pop().unwrap();
        process(x);
    }
}

fn loud(mut v: Vec<i32>) {
    while !v.is_empty() {
        let x = v.pop().unwrap();
        process(x);
    }
}
"""


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════

def wrap_fn(body: str, params: str = "mut v: Vec<i32>") -> str:
    """Wrap statements in a function so they form a complete file."""
    return f"fn f({params}) {{\n{body}\n}}\n"


def normalize(text: str) -> str:
    """Collapse all whitespace runs, so rewrites compare by tokens."""
    return " ".join(text.split())


def analyze(text: str, name: str = "test.rs") -> Tuple[SourceFile, H.Crate, TypeckResults]:
    source, crate = parse_text(text, name)
    return source, crate, typeck(crate)


def lint_source(text: str, name: str = "test.rs") -> Tuple[SourceFile, List[Finding]]:
    """Run the loop check on every ``while`` of ``text``."""
    source, crate, results = analyze(text, name)
    cx = LintContext(resolver=results, source=source)
    findings = []
    for node in walk(crate):
        if isinstance(node, H.While):
            finding = check_while(cx, node)
            if finding is not None:
                findings.append(finding)
    return source, findings


def lint(body: str, params: str = "mut v: Vec<i32>") -> List[Finding]:
    """Findings for ``body`` placed inside ``fn f(<params>)``."""
    return lint_source(wrap_fn(body, params))[1]


def rewrite(text: str) -> str:
    """Apply the suggestion of the single finding in ``text``."""
    source, findings = lint_source(text)
    assert len(findings) == 1, findings
    suggestion = build_suggestion(findings[0], source)
    return apply_edits(source.text, suggestion.edits)


# ═══════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def runner():
    return CheckerRunner(suppressions=SuppressionManager())


@pytest.fixture
def rust_tree(tmp_path):
    """A small directory of Rust files: one finding, one clean, one nested."""
    (tmp_path / "main.rs").write_text(LOCAL_FORM_RS, encoding="utf-8")
    (tmp_path / "clean.rs").write_text(
        "fn ok(mut v: Vec<i32>) {\n    while let Some(x) = v.pop() {\n        process(x);\n    }\n}\n",
        encoding="utf-8",
    )
    sub = tmp_path / "nested"
    sub.mkdir()
    (sub / "args.rs").write_text(ARGUMENT_FORM_RS, encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not rust", encoding="utf-8")
    return tmp_path
