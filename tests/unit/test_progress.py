"""Unit tests for the NDJSON progress stream."""

from pathlib import Path

from estate_deployments.progress import NDJSONProgressWriter, make_event, read_events


def test_event_dict_uses_camel_case():
    event = make_event(2, "RealEstateSystem", "0xabc", already_deployed=True)

    data = event.to_dict()

    assert data["stepIndex"] == 2
    assert data["contractName"] == "RealEstateSystem"
    assert data["address"] == "0xabc"
    assert data["alreadyDeployed"] is True
    assert data["timestamp"].endswith("+00:00")


def test_writer_appends_one_line_per_event(tmp_path: Path):
    path = tmp_path / "progress" / "local-progress.ndjson"
    writer = NDJSONProgressWriter(path)

    writer(make_event(0, "SystemDeployerLib1", "0x1"))
    writer(make_event(1, "SystemDeployerLib2", "0x2"))

    lines = path.read_text().splitlines()
    assert len(lines) == 2
    assert [e["stepIndex"] for e in read_events(path)] == [0, 1]


def test_writer_failure_is_logged_not_raised(tmp_path: Path, caplog):
    blocker = tmp_path / "file"
    blocker.write_text("")
    writer = NDJSONProgressWriter(blocker / "progress.ndjson")

    with caplog.at_level("WARNING", logger="estate_deployments.progress"):
        writer(make_event(0, "SystemDeployerLib1", "0x1"))

    assert "Could not write progress event" in caplog.text
