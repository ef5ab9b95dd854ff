import pytest

from satellite_tasks.tasks.models import (
    AnalysisRequest,
    EngineResponse,
    TaskRecord,
    TaskStatus,
)


@pytest.mark.parametrize(
    "wire, expected",
    [
        ("completed", TaskStatus.COMPLETED),
        ("COMPLETED", TaskStatus.COMPLETED),
        (" success ", TaskStatus.COMPLETED),
        ("failed", TaskStatus.ERROR),
        ("Error", TaskStatus.ERROR),
        ("cancelled", TaskStatus.CANCELED),
        ("canceled", TaskStatus.CANCELED),
        ("queued", TaskStatus.PENDING),
        ("running", TaskStatus.RUNNING),
    ],
)
def test_status_from_wire_normalizes_variants(wire, expected):
    assert TaskStatus.from_wire(wire) is expected


@pytest.mark.parametrize("wire", [None, "", "exploded"])
def test_status_from_wire_rejects_unknown(wire):
    with pytest.raises(ValueError):
        TaskStatus.from_wire(wire)


def test_terminal_statuses():
    assert {s for s in TaskStatus if s.is_terminal} == {
        TaskStatus.COMPLETED,
        TaskStatus.ERROR,
        TaskStatus.CANCELED,
    }


def test_engine_response_accepts_camel_case_image_id_and_ignores_extras():
    response = EngineResponse.model_validate(
        {"status": "completed", "imageId": "LANDSAT/123", "unexpected": 1}
    )
    assert response.image_id == "LANDSAT/123"
    assert not hasattr(response, "unexpected")


def test_task_record_normalizes_status_on_load():
    record = TaskRecord.model_validate({"taskId": "abc", "status": "FAILED"})
    assert record.task_id == "abc"
    assert record.status is TaskStatus.ERROR


def test_from_engine_keeps_payload_and_overrides_status():
    response = EngineResponse(
        status="success",
        date="2024-05-01",
        message="done",
        data={"ndvi": 0.42},
        type="ndvi",
        image_id="img-1",
    )

    record = TaskRecord.from_engine("abc", response, TaskStatus.COMPLETED)

    assert record.status is TaskStatus.COMPLETED
    assert record.data == {"ndvi": 0.42}
    assert record.date == "2024-05-01"
    assert record.image_id == "img-1"
    assert record.type == "ndvi"


def test_task_record_json_round_trip_preserves_fields():
    record = TaskRecord(task_id="abc", status=TaskStatus.RUNNING, type="water", data=[1, 2])
    restored = TaskRecord.model_validate_json(record.model_dump_json())
    assert restored == record


def test_analysis_request_serializes_with_camel_case_keys():
    request = AnalysisRequest(service_type="ndvi", parameters={"region": "seoul"})
    dumped = request.model_dump(by_alias=True)
    assert dumped["serviceType"] == "ndvi"
    assert "submittedAt" in dumped
    assert AnalysisRequest.model_validate_json(request.model_dump_json(by_alias=True)) == request
