import pytest

from juggler.core import FeederStatus, Job, JobStatus


@pytest.mark.parametrize(
    "status,feeder_status,expected",
    [
        (JobStatus.PRINTING, FeederStatus.PRINTING, "Printing... (42.5%)"),
        (JobStatus.PRINTING, FeederStatus.MMU_BUSY, "Printing paused: MMU paused printing"),
        (
            JobStatus.PRINTING,
            FeederStatus.FSENSOR_BUSY,
            "Printing paused: Filament sensor paused printing",
        ),
        (JobStatus.PRINTING, FeederStatus.IDLE, "Printing"),
        (JobStatus.WAITING_BUTTON, FeederStatus.PRINTING, "Waiting for a button"),
        (JobStatus.FINISHED, FeederStatus.FINISHED, "Finished"),
    ],
)
def test_progress_text(status, feeder_status, expected) -> None:
    job = Job(id=1, status=status, progress=42.5, feeder_status=feeder_status)

    assert job.progress_text() == expected


def test_progress_text_rounds_to_one_decimal() -> None:
    job = Job(
        id=1,
        status=JobStatus.PRINTING,
        progress=33.333,
        feeder_status=FeederStatus.PRINTING,
    )

    assert job.progress_text() == "Printing... (33.3%)"


def test_from_remote_matches_keys_case_insensitively() -> None:
    job = Job.from_remote(
        {
            "ID": "12",
            "File_Name": "cube.gcode",
            "file_content": "G28",
            "owner": "bob",
            "STATUS": "Cancelling",
            "Progress": "12.5",
        }
    )

    assert job.id == 12
    assert job.filename == "cube.gcode"
    assert job.owner == "bob"
    assert job.status == JobStatus.CANCELLING
    assert job.progress == 12.5


def test_from_remote_keeps_unknown_status_verbatim() -> None:
    job = Job.from_remote({"Id": 3, "Status": "Paused"})

    assert job.status == "Paused"


def test_from_remote_without_content_is_inactive() -> None:
    assert not Job.from_remote(None).is_active
    assert not Job.from_remote({"Id": "not-a-number"}).is_active


def test_reset_clears_job() -> None:
    job = Job(
        id=5,
        filename="a.gcode",
        file_content="G28",
        status=JobStatus.FINISHED,
        progress=100.0,
        feeder_status=FeederStatus.FINISHED,
    )

    job.reset()

    assert job == Job()
    assert job.status == JobStatus.WAITING_JOB
