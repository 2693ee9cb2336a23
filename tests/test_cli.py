import json

import pytest

from form_rules.cli import main

FORM = {
    "sections": [
        {
            "id": "s1",
            "title": "Contact",
            "fields": [
                {"id": "f_email", "label": "Email", "type": "email"},
                {"id": "f_svc", "label": "Service", "stableId": "service"},
                {
                    "id": "f_roof",
                    "label": "Roof Size",
                    "conditionalLogic": {"when": {"field": "f_svc", "operator": "equals", "value": "Roofing"}},
                },
            ],
        }
    ]
}
DATA = {"f_email": "lead@example.com", "f_svc": "Siding"}


@pytest.fixture
def files(tmp_path, monkeypatch):
    monkeypatch.delenv("FORM_RULES_DEBUG", raising=False)
    paths = {}
    for name, payload in (("form", FORM), ("data", DATA)):
        p = tmp_path / f"{name}.json"
        p.write_text(json.dumps(payload), encoding="utf-8")
        paths[name] = str(p)
    rules = [
        {"id": "siding", "conditions": [{"field": "f_svc", "stableId": "service", "label": "Service",
                                         "operator": "equals", "value": "Siding"}],
         "template": {"subject": "{{service}} lead", "content": "Reply to {{email}}"}},
    ]
    p = tmp_path / "rules.json"
    p.write_text(json.dumps({"rules": rules}), encoding="utf-8")
    paths["rules"] = str(p)
    return paths


def _run(capsys, argv):
    code = main(argv)
    return code, json.loads(capsys.readouterr().out)


def test_stable_ids(capsys, files):
    code, out = _run(capsys, ["stable-ids", files["form"]])
    assert code == 0 and out["ok"] is True
    assert [f["stableId"] for f in out["sections"][0]["fields"]] == ["email", "service", "contact_roofSize"]
    assert out["summary"]["fieldsUpdated"] == 2


def test_stable_ids_dry_run(capsys, files):
    code, out = _run(capsys, ["stable-ids", files["form"], "--dry-run"])
    assert code == 0
    assert out["summary"]["dryRun"] is True
    assert "stableId" not in out["sections"][0]["fields"][0]


def test_resolve(capsys, files):
    code, out = _run(capsys, ["resolve", "service", "--form", files["form"], "--data", files["data"]])
    assert code == 0
    assert out["found"] is True
    assert (out["value"], out["keyUsed"], out["tier"]) == ("Siding", "f_svc", "stable_id")


def test_evaluate(capsys, files):
    code, out = _run(
        capsys, ["evaluate", "--form", files["form"], "--data", files["data"], "--rules", files["rules"]]
    )
    assert code == 0
    outcome = out["outcomes"][0]
    assert outcome["matched"] is True
    assert outcome["recipient"] == "lead@example.com"
    assert outcome["email"] == {"subject": "Siding lead", "body": "Reply to lead@example.com"}


def test_render(capsys, files):
    code, out = _run(capsys, ["render", "Hi {{ email }}", "--form", files["form"], "--data", files["data"]])
    assert code == 0
    assert out["result"] == "Hi lead@example.com"


def test_visibility(capsys, files):
    code, out = _run(capsys, ["visibility", "--form", files["form"], "--data", files["data"]])
    assert code == 0
    assert out["visible"] == ["f_email", "f_svc"]
    assert out["hidden"] == ["f_roof"]


def test_debug_includes_diagnostics(capsys, files):
    code, out = _run(capsys, ["--debug", "resolve", "service", "--form", files["form"], "--data", files["data"]])
    assert code == 0
    assert any(e["message"] == "Resolved field" for e in out["diagnostics"])


def test_missing_file_exits_2(capsys, files, tmp_path):
    code, out = _run(capsys, ["resolve", "x", "--form", str(tmp_path / "nope.json"), "--data", files["data"]])
    assert code == 2
    assert out == {"ok": False, "error": "file_not_found", "message": out["message"]}


def test_invalid_json_exits_2(capsys, files, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{oops", encoding="utf-8")
    code, out = _run(capsys, ["render", "x", "--form", files["form"], "--data", str(bad)])
    assert code == 2
    assert out["error"] == "invalid_json"


def test_data_must_be_an_object(capsys, files, tmp_path):
    arr = tmp_path / "arr.json"
    arr.write_text("[]", encoding="utf-8")
    code, out = _run(capsys, ["render", "x", "--form", files["form"], "--data", str(arr)])
    assert code == 2
    assert out["error"] == "invalid_data"
