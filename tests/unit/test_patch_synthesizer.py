from __future__ import annotations

from buildheal.classifier.rules import classify
from buildheal.models import PatchKind, RootCause, RootCauseCategory, RootCauseType, Severity
from buildheal.patches.synthesizer import PatchSynthesizer, synthesize
from buildheal.simulate import MOCK_LOGS


def test_lint_patch_is_auto_fix() -> None:
    logs = MOCK_LOGS["lint"]
    patch = synthesize(classify(logs), logs)
    assert patch.kind == PatchKind.auto_fix
    assert patch.command == "npm run lint -- --fix"
    assert "npm run lint -- --fix" in patch.script
    assert patch.files == []


def test_dependency_patch_installs_missing_modules() -> None:
    logs = "Error: Cannot find module 'express'\nError: Cannot find module \"lodash\""
    rc = classify(logs)
    patch = synthesize(rc, logs)
    assert patch.kind == PatchKind.install
    assert patch.command == "npm install express lodash"
    assert "express" in patch.description and "lodash" in patch.description
    assert patch.files == ["package.json", "package-lock.json"]


def test_dependency_patch_without_module_names_reinstalls() -> None:
    logs = "Error: ENOENT: no such file or directory, open '/app/config.json'"
    rc = classify(logs)
    assert rc.type == RootCauseType.dependency
    assert rc.affected_files == []
    patch = synthesize(rc, logs)
    assert patch.command == "npm install"
    assert patch.description == "Reinstall dependencies (missing file)"
    assert "npm install\n" in patch.script


def test_syntax_patch_embeds_error_message() -> None:
    for msg in ("Unexpected token 'await'", "Missing ) after argument list", "x"):
        logs = f"npm run build\nSyntaxError: {msg}\n"
        rc = classify(logs)
        assert rc.type == RootCauseType.syntax
        patch = synthesize(rc, logs)
        assert patch.kind == PatchKind.code_edit
        assert patch.command is None
        assert msg in patch.script
        assert msg in patch.description


def test_syntax_patch_falls_back_when_message_missing() -> None:
    logs = "unexpected token < in JSON at position 0"
    rc = classify(logs)
    assert rc.type == RootCauseType.syntax
    patch = synthesize(rc, logs)
    assert "Unknown syntax error" in patch.script


def test_test_patch_proposes_snapshot_update() -> None:
    logs = MOCK_LOGS["test"]
    rc = classify(logs)
    assert rc.type == RootCauseType.test
    patch = synthesize(rc, logs)
    assert patch.kind == PatchKind.test_update
    assert patch.command == "npm test -- --updateSnapshot"
    assert patch.files == ["src/utils/helper.test.js"]


def test_runtime_and_unknown_are_manual() -> None:
    for logs in ("TypeError: cb is not a function", "killed"):
        patch = PatchSynthesizer().synthesize(classify(logs), logs)
        assert patch.kind == PatchKind.manual
        assert patch.command is None
        assert "manual review required" in patch.description.lower()


def test_synthesize_tolerates_empty_logs() -> None:
    rc = RootCause(
        type=RootCauseType.syntax,
        category=RootCauseCategory.code_quality,
        severity=Severity.critical,
        description="JavaScript syntax errors",
    )
    patch = synthesize(rc, None)
    assert patch.kind == PatchKind.code_edit
    assert patch.files == []
