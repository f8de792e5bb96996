import json

from taskboard.generate_openapi import generate_openapi


def test_writes_schema_with_tags(tmp_path):
    target = generate_openapi(tmp_path / "interfaces" / "openapi.json")

    schema = json.loads(target.read_text(encoding="utf-8"))
    assert schema["info"]["title"] == "Taskboard Backend"
    assert {t["name"] for t in schema["tags"]} >= {"health", "tasks"}
    assert "/api/v1/tasks/import" in schema["paths"]
